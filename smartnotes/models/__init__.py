from .task import Task
from .user import User, DeviceToken
from .reminder import TaskReminder
