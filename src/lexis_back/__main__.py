from lexis_back.cli import app

app(prog_name="lexis-back")
