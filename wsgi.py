from cftracker import create_app

app = create_app()
