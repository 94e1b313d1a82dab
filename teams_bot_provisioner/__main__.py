from .cli import app

app(prog_name="teams-bot-provisioner")
