from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.delivery.views import (
    DeliveryAdjustmentViewSet,
    DeliveryLogViewSet,
    DeliveryPricingView,
    DeliveryQuoteView,
    DeliveryZoneViewSet,
)

router = DefaultRouter()
router.register("zones", DeliveryZoneViewSet, basename="delivery-zone")
router.register("logs", DeliveryLogViewSet, basename="delivery-log")
router.register("adjustments", DeliveryAdjustmentViewSet, basename="delivery-adjustment")

urlpatterns = [
    path("quote/", DeliveryQuoteView.as_view(), name="delivery-quote"),
    path("pricing/", DeliveryPricingView.as_view(), name="delivery-pricing"),
]
urlpatterns += router.urls
