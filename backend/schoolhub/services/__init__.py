from . import academic_years, accounts, schools
from . import catalog, students, teachers
from . import attendance, exams, marks, promotions
from . import fees, billing
