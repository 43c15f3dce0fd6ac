from app.fsvp import create_app

app = create_app()
