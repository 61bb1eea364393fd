from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.activity_log import ActivityLog
from billing_api.schemas.billing import ActivityLogCreate


class CRUDActivityLog(CRUDBase[ActivityLog, ActivityLogCreate, BaseModel]):
    pass


activity_log_crud = CRUDActivityLog(ActivityLog)
