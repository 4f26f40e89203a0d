from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """
    Base user model.
    Students, teachers, staff and admins are all users; what each may do is
    decided by the single `role` they carry.
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        STAFF = 'staff', 'Staff'
        TEACHER = 'teacher', 'Teacher'
        STUDENT = 'student', 'Student'

    role = models.CharField(max_length=16, choices=Role.choices, default=Role.STUDENT, db_index=True)

    def __str__(self):
        return self.username

    @property
    def is_student(self) -> bool:
        return self.role == self.Role.STUDENT

    @property
    def is_teacher(self) -> bool:
        return self.role == self.Role.TEACHER
