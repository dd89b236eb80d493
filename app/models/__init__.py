from .task import Task
from .user import User
