from vinimai import create_app

app = create_app()
