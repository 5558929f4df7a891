# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.

from app.models.user import User  # noqa: F401 : doit précéder location_check
from app.models.location_check import LocationCheck  # noqa: F401
from app.models.attendance import Attendance  # noqa: F401
