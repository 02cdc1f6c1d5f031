from dataclasses import dataclass
from typing import Optional

ADMIN = 'admin'
SCHEDULER = 'scheduler'
CAREGIVER = 'caregiver'


@dataclass(frozen=True)
class Actor:
    """Who is acting, and for which tenant. Passed explicitly to every transition."""

    user_id: str
    business_id: str
    role: str = CAREGIVER
    caregiver_id: Optional[int] = None

    @classmethod
    def from_user(cls, user):
        profile = getattr(user, 'caregiver_profile', None)
        role = ADMIN if user.is_superuser else user.role
        return cls(
            user_id=str(user.pk),
            business_id=user.business_id,
            role=role,
            caregiver_id=profile.pk if profile is not None else None,
        )

    @property
    def can_manage_shifts(self):
        return self.role in (ADMIN, SCHEDULER)

    def __str__(self):
        return f"{self.role}:{self.user_id}"
