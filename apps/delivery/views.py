from rest_framework import generics, mixins, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.audit.services import record_audit
from apps.common.exceptions import NotFound
from apps.common.permissions import RolePermission, has_capability
from apps.delivery.distance import GoogleDistanceClient
from apps.delivery.models import DeliveryAdjustment, DeliveryLog, DeliveryPricing, DeliveryZone
from apps.delivery.serializers import (
    DeliveryAdjustmentSerializer,
    DeliveryLogSerializer,
    DeliveryPricingSerializer,
    DeliveryQuoteSerializer,
    DeliveryZoneSerializer,
    DistanceRequestSerializer,
)
from apps.delivery.services import DeliveryFeeService, adjust_delivery_fee
from apps.orders.models import Order


def _zone_snapshot(zone):
    return {
        "name": zone.name,
        "min_distance": str(zone.min_distance),
        "max_distance": str(zone.max_distance),
        "price": str(zone.price),
        "is_active": zone.is_active,
    }


class DeliveryQuoteView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["delivery.quote"]}

    def post(self, request):
        serializer = DeliveryQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = None
        if data.get("order"):
            order = Order.objects.filter(pk=data["order"]).first()
            owns_order = order is not None and order.customer_id == request.user.pk
            if not owns_order and (order is None or not has_capability(request.user, "orders.manage")):
                raise NotFound("Order not found")

        route = None
        distance = data.get("distance")
        if distance is None:
            route = GoogleDistanceClient().measure(data["origin"], data["destination"])
            distance = route.distance_km

        breakdown, log = DeliveryFeeService().quote(
            distance=distance,
            order_subtotal=data["order_subtotal"],
            promo_code=data.get("promo_code"),
            redeem=data["redeem"],
            user=request.user,
            order=order,
        )
        body = breakdown.as_dict()
        body["log_id"] = str(log.id)
        if route is not None:
            body["route"] = route.as_dict()
        return Response(body, status=status.HTTP_200_OK)


class CalculateDistanceView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["maps.distance"]}

    def post(self, request):
        serializer = DistanceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = GoogleDistanceClient().measure(
            serializer.validated_data["origin"], serializer.validated_data["destination"]
        )
        return Response(result.as_dict(), status=status.HTTP_200_OK)


class DeliveryZoneViewSet(viewsets.ModelViewSet):
    serializer_class = DeliveryZoneSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["delivery.view"],
        "retrieve": ["delivery.view"],
        "create": ["delivery.manage"],
        "update": ["delivery.manage"],
        "partial_update": ["delivery.manage"],
        "destroy": ["delivery.manage"],
    }

    def get_queryset(self):
        queryset = DeliveryZone.objects.all()
        is_active = self.request.query_params.get("is_active")
        if is_active is not None:
            normalized = is_active.strip().lower()
            if normalized in {"1", "true", "yes"}:
                queryset = queryset.filter(is_active=True)
            elif normalized in {"0", "false", "no"}:
                queryset = queryset.filter(is_active=False)
        return queryset

    def perform_create(self, serializer):
        zone = serializer.save()
        record_audit(
            actor=self.request.user,
            action="delivery.zone.create",
            entity_type="delivery_zone",
            entity_id=zone.id,
            payload=_zone_snapshot(zone),
        )

    def perform_update(self, serializer):
        before = _zone_snapshot(self.get_object())
        zone = serializer.save()
        record_audit(
            actor=self.request.user,
            action="delivery.zone.update",
            entity_type="delivery_zone",
            entity_id=zone.id,
            payload={"before": before, "after": _zone_snapshot(zone)},
        )

    def perform_destroy(self, instance):
        record_audit(
            actor=self.request.user,
            action="delivery.zone.delete",
            entity_type="delivery_zone",
            entity_id=instance.id,
            payload=_zone_snapshot(instance),
        )
        instance.delete()


class DeliveryPricingView(generics.RetrieveUpdateAPIView):
    serializer_class = DeliveryPricingSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "get": ["delivery.view"],
        "put": ["delivery.manage"],
        "patch": ["delivery.manage"],
    }

    def get_object(self):
        return DeliveryPricing.load()

    def perform_update(self, serializer):
        before = DeliveryPricingSerializer(DeliveryPricing.load()).data
        pricing = serializer.save(updated_by=self.request.user)
        after = DeliveryPricingSerializer(pricing).data
        record_audit(
            actor=self.request.user,
            action="delivery.pricing.update",
            entity_type="delivery_pricing",
            entity_id=pricing.pk,
            payload={
                "before": {key: before[key] for key in serializer.validated_data},
                "after": {key: after[key] for key in serializer.validated_data},
            },
        )


class DeliveryLogViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = DeliveryLogSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["delivery.view"],
        "retrieve": ["delivery.view"],
    }

    def get_queryset(self):
        queryset = DeliveryLog.objects.select_related("zone").order_by("-created_at")
        if not has_capability(self.request.user, "delivery.logs.view"):
            queryset = queryset.filter(user=self.request.user)

        action = self.request.query_params.get("action")
        if action:
            queryset = queryset.filter(action=action)
        order_id = self.request.query_params.get("order")
        if order_id:
            queryset = queryset.filter(order_id=order_id)
        return queryset


class DeliveryAdjustmentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = DeliveryAdjustmentSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["delivery.manage"],
        "retrieve": ["delivery.manage"],
        "create": ["delivery.manage"],
    }

    def get_queryset(self):
        queryset = DeliveryAdjustment.objects.select_related("adjusted_by").order_by("-created_at")
        order_id = self.request.query_params.get("order")
        if order_id:
            queryset = queryset.filter(order_id=order_id)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        adjustment = adjust_delivery_fee(
            order=serializer.validated_data["order"],
            adjusted_price=serializer.validated_data["adjusted_price"],
            reason=serializer.validated_data["reason"],
            actor=request.user,
        )
        return Response(self.get_serializer(adjustment).data, status=status.HTTP_201_CREATED)
