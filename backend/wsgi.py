from courier import create_app

app = create_app()
