# Import all models so Base.metadata.create_all() can see them.

from creditledger.models.user import User  # noqa: F401
from creditledger.models.credit import UserCredit, CreditTransaction  # noqa: F401
from creditledger.models.payment import Payment  # noqa: F401
