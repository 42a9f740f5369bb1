from spine.cli import app

app(prog_name="spine")
