from django.urls import path

from .views import (
    OrderPaymentsView,
    OrdersCollectionView,
    OrdersPingView,
    PaymentCompletionView,
    PlaceOrderView,
    RetrieveOrderView,
)

urlpatterns = [
    path("orders/ping/", OrdersPingView.as_view(), name="orders-ping"),
    path("orders/", OrdersCollectionView.as_view(), name="orders-collection"),
    path("orders/<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("orders/<uuid:oid>/payments/", OrderPaymentsView.as_view(), name="orders-payments"),
    path("orders/<uuid:oid>/place/", PlaceOrderView.as_view(), name="orders-place"),
    path("payments/<uuid:pid>/complete/", PaymentCompletionView.as_view(), name="payments-complete"),
]
