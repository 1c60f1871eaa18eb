from backup_scheduler.cli import app

app(prog_name="backup-scheduler")
