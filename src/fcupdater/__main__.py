from fcupdater import cli

cli.app()
