from warmer.main import run

run()
