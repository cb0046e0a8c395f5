from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from .audit.types import ACTIONS, ENTITY_TYPES


class Family(models.Model):
    name = models.CharField(max_length=255, blank=True, default='My Family')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'families'


class FamilyMember(models.Model):
    ROLE_CHOICES = [
        ('owner', 'Owner'),
        ('parent', 'Parent'),
        ('read_only', 'Read only'),
    ]
    EDIT_ROLES = ('owner', 'parent')

    family = models.ForeignKey(Family, on_delete=models.CASCADE, related_name='members')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='family_memberships')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='parent')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'family_members'
        constraints = [
            models.UniqueConstraint(fields=['family', 'user'], name='uniq_family_member'),
        ]


class Child(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
    ]

    family = models.ForeignKey(Family, on_delete=models.PROTECT, related_name='children')
    name = models.CharField(max_length=255)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=20, choices=GENDER_CHOICES)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'children'


class Visit(models.Model):
    VISIT_TYPE_CHOICES = [
        ('wellness', 'Wellness'),
        ('sick', 'Sick'),
        ('injury', 'Injury'),
        ('vision', 'Vision'),
        ('dental', 'Dental'),
    ]

    child = models.ForeignKey(Child, on_delete=models.CASCADE, related_name='visits')
    visit_date = models.DateField()
    visit_time = models.CharField(max_length=5, blank=True, null=True)  # "HH:MM"
    visit_type = models.CharField(max_length=20, choices=VISIT_TYPE_CHOICES)
    location = models.CharField(max_length=255, blank=True, null=True)
    doctor_name = models.CharField(max_length=255, blank=True, null=True)
    title = models.CharField(max_length=255, blank=True, null=True)
    weight_value = models.DecimalField(max_digits=5, decimal_places=2, blank=True, null=True)
    height_value = models.DecimalField(max_digits=6, decimal_places=2, blank=True, null=True)
    head_circumference_value = models.DecimalField(max_digits=6, decimal_places=2, blank=True, null=True)
    blood_pressure = models.CharField(max_length=20, blank=True, null=True)
    heart_rate = models.IntegerField(blank=True, null=True)
    symptoms = models.TextField(blank=True, null=True)
    temperature = models.DecimalField(max_digits=4, decimal_places=1, blank=True, null=True)
    illness_start_date = models.DateField(blank=True, null=True)
    end_date = models.DateField(blank=True, null=True)
    treatment = models.TextField(blank=True, null=True)
    # {"od": {"sphere", "cylinder", "axis"}, "os": {...}}
    vision_refraction = models.JSONField(blank=True, null=True)
    needs_glasses = models.BooleanField(blank=True, null=True)
    ordered_glasses = models.BooleanField(blank=True, null=True)
    illnesses = models.JSONField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visits'


class Illness(models.Model):
    ILLNESS_TYPE_CHOICES = [
        ('flu', 'Flu'),
        ('strep', 'Strep'),
        ('rsv', 'RSV'),
        ('covid', 'COVID'),
        ('cold', 'Cold'),
        ('stomach_bug', 'Stomach bug'),
        ('ear_infection', 'Ear infection'),
        ('hand_foot_mouth', 'Hand, foot and mouth'),
        ('croup', 'Croup'),
        ('pink_eye', 'Pink eye'),
        ('other', 'Other'),
    ]

    child = models.ForeignKey(Child, on_delete=models.CASCADE, related_name='illnesses')
    visit = models.ForeignKey(Visit, on_delete=models.SET_NULL, blank=True, null=True, related_name='linked_illnesses')
    illness_types = models.JSONField(default=list)
    start_date = models.DateField()
    end_date = models.DateField(blank=True, null=True)
    symptoms = models.TextField(blank=True, null=True)
    temperature = models.DecimalField(
        max_digits=4, decimal_places=1, blank=True, null=True,
        validators=[MinValueValidator(95), MaxValueValidator(110)],
    )
    severity = models.IntegerField(
        blank=True, null=True,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
    )
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'illnesses'


class AuditEvent(models.Model):
    """
    不可变的审计记录，只追加，不修改、不删除。

    entity_id 不是外键：实体删除后历史仍然保留。
    """

    ENTITY_TYPE_CHOICES = [(t, t.title()) for t in ENTITY_TYPES]
    ACTION_CHOICES = [(a, a.title()) for a in ACTIONS]

    entity_type = models.CharField(max_length=50, choices=ENTITY_TYPE_CHOICES)
    entity_id = models.IntegerField()
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='audit_events',
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    changed_at = models.DateTimeField(auto_now_add=True)
    request_id = models.UUIDField(blank=True, null=True)
    changes = models.JSONField(default=dict)
    summary = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'audit_events'
        ordering = ['-changed_at', '-id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id', 'changed_at']),
            models.Index(fields=['user', 'changed_at']),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError('AuditEvent is append-only and cannot be modified')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('AuditEvent is append-only and cannot be deleted')
