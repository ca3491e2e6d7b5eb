from assist_hub.main import run

run()
