from .base import Base
from .form import Form
from .submission import Submission
from .user import User

__all__ = ['Base', 'Form', 'Submission', 'User']
