import typer

from fmd_sharing.cli import cuts, dead, filter_events, merge

app = typer.Typer(help="FMD sharing filter CLI")

app.command(name="filter")(filter_events.filter_events)
app.command(name="cuts")(cuts.show_cuts)
app.command(name="merge")(merge.merge)
app.command(name="terminate")(merge.terminate)
app.command(name="dead")(dead.dead)


# -------------------------
# Main entrypoint
# -------------------------
def main():
    """CLI entrypoint for the FMD sharing filter."""
    app()


if __name__ == "__main__":
    main()
