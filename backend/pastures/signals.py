import logging

from django.db.models.signals import post_delete
from django.dispatch import receiver

from .models import Pasture
from .services import detach_pasture_from_gates

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=Pasture)
def detach_deleted_pasture_from_gates(sender, instance, **kwargs):
    """Remove the deleted pasture from gate connection lists"""
    updated = detach_pasture_from_gates(instance.pk)
    if updated:
        logger.info(f"Removed pasture {instance.pk} from {updated} gate(s)")
