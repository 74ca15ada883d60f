from stallbid.main import run

run()
