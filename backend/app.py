# module backend.app
from backend.app_setup.factory import create_app

# App globale (importée par backend.asgi et les tests)
app = create_app()
