# Campus Parking: Database Models
# Import all models here for SQLAlchemy discovery

from campus_parking.models.storage_entry import StorageEntry   # noqa
from campus_parking.models.alert import Alert                  # noqa
