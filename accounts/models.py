from django.conf import settings
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver


class StaffProfile(models.Model):
    ROLE_CHOICES = [
        ("SUPER_ADMIN", "Super admin"),
        ("ADMIN", "Admin"),
        ("STAFF", "Door staff"),
    ]
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile")
    role = models.CharField(max_length=12, choices=ROLE_CHOICES, default="STAFF")
    must_reset_password = models.BooleanField(default=False)  # set for invited users

    def __str__(self):
        return f"Profile<{self.user.username}:{self.role}>"


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_profile(sender, instance, created, **kwargs):
    if created:
        StaffProfile.objects.get_or_create(
            user=instance,
            defaults={"role": "SUPER_ADMIN" if instance.is_superuser else "STAFF"},
        )
