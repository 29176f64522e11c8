from app.notaris import create_app

app = create_app()
