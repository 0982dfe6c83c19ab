from owner_reports.cli import app

app()
