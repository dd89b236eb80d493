# app/core/exceptions.py

class BaseAppException(Exception):
    """Базовый класс для всех кастомных исключений приложения."""
    status_code = 500

    def __init__(self, message: str = "App exception", error: str = None):
        super().__init__(message)
        self.message = message
        self.error = error

# ==== Валидация ====

class ValidationError(BaseAppException):
    """Общая ошибка валидации."""
    status_code = 400

    def __init__(self, message: str = "Validation error", error: str = None):
        super().__init__(message, error)

class TaskValidationError(ValidationError):
    """Ошибка валидации задачи."""
    def __init__(self, message: str = "Task validation error", error: str = None):
        super().__init__(message, error)

class UserValidationError(ValidationError):
    """Ошибка валидации пользователя (регистрация, дубликаты)."""
    def __init__(self, message: str = "User validation error", error: str = None):
        super().__init__(message, error)

# ==== NotFound ====

class NotFoundError(BaseAppException):
    """Ошибка отсутствия ресурса."""
    status_code = 404

    def __init__(self, message: str = "Resource not found", error: str = None):
        super().__init__(message, error)

class TaskNotFound(NotFoundError):
    """Ошибка: задача не найдена (или принадлежит другому пользователю)."""
    def __init__(self, message: str = "Task not found", error: str = None):
        super().__init__(message, error)

class SubtaskNotFound(NotFoundError):
    """Ошибка: сабтаска не найдена."""
    def __init__(self, message: str = "Subtask not found", error: str = None):
        super().__init__(message, error)

class UserNotFound(NotFoundError):
    """Ошибка: пользователь не найден."""
    def __init__(self, message: str = "User not found", error: str = None):
        super().__init__(message, error)

# ==== Авторизация ====

class AuthError(BaseAppException):
    """Ошибка аутентификации или авторизации."""
    status_code = 401

    def __init__(self, message: str = "Authentication or authorization error", error: str = None):
        super().__init__(message, error)

# ==== Хранилище ====

class PersistenceError(BaseAppException):
    """Сбой хранилища (соединение, нарушение ограничений). Не ретраится."""
    status_code = 500

    def __init__(self, message: str = "Persistence error", error: str = None):
        super().__init__(message, error)
