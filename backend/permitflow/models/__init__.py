from permitflow.models.application import Application  # noqa: F401
from permitflow.models.fee import FeeSchedule, FeePayment, PaymentEvent  # noqa: F401
from permitflow.models.directorate import DirectorateApproval  # noqa: F401
from permitflow.models.audit import AuditLog  # noqa: F401
