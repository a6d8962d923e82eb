from app.core.models.dispensation import Dispensation
from app.core.models.teacher import Teacher
