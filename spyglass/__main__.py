from spyglass.main import run

run()
