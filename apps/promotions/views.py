from rest_framework import viewsets

from apps.audit.services import record_audit
from apps.common.permissions import RolePermission
from apps.promotions.models import Promotion
from apps.promotions.serializers import PromotionSerializer


def _snapshot(promotion):
    return {
        "code": promotion.code,
        "discount_type": promotion.discount_type,
        "discount_value": str(promotion.discount_value),
        "usage_limit": promotion.usage_limit,
        "is_active": promotion.is_active,
    }


class PromotionViewSet(viewsets.ModelViewSet):
    serializer_class = PromotionSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["promotions.manage"],
        "retrieve": ["promotions.manage"],
        "create": ["promotions.manage"],
        "update": ["promotions.manage"],
        "partial_update": ["promotions.manage"],
        "destroy": ["promotions.manage"],
    }

    def get_queryset(self):
        queryset = Promotion.objects.select_related("created_by")
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(code__icontains=query.strip())
        is_active = self.request.query_params.get("is_active")
        if is_active is not None:
            normalized = is_active.strip().lower()
            if normalized in {"1", "true", "yes"}:
                queryset = queryset.filter(is_active=True)
            elif normalized in {"0", "false", "no"}:
                queryset = queryset.filter(is_active=False)
        return queryset

    def perform_create(self, serializer):
        promotion = serializer.save(created_by=self.request.user)
        record_audit(
            actor=self.request.user,
            action="promotions.create",
            entity_type="promotion",
            entity_id=promotion.id,
            payload=_snapshot(promotion),
        )

    def perform_update(self, serializer):
        before = _snapshot(self.get_object())
        promotion = serializer.save()
        record_audit(
            actor=self.request.user,
            action="promotions.update",
            entity_type="promotion",
            entity_id=promotion.id,
            payload={"before": before, "after": _snapshot(promotion)},
        )

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="promotions.delete",
            entity_type="promotion",
            entity_id=instance.id,
            payload=_snapshot(instance),
        )
        instance.delete()
