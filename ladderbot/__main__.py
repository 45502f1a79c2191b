from ladderbot.main import cli

cli()
