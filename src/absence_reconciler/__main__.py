from absence_reconciler import cli

cli.app()
