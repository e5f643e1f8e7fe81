# module ticketing.app
from ticketing.app_setup.factory import create_app

# App globale
app = create_app()
