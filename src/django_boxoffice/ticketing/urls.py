"""URL configuration for the ticketing app.

Mount under any prefix in the host project::

    urlpatterns = [
        path("api/", include("django_boxoffice.ticketing.urls")),
    ]
"""

from django.urls import path

from django_boxoffice.ticketing.views import (
    CategoryListView,
    CategoryUpdateView,
    DashboardStatsView,
    OrderConfirmView,
    OrderCreateView,
    OrderDetailView,
    OrderListView,
    RedeemView,
    ResendConfirmationView,
    TicketListView,
)
from django_boxoffice.ticketing.webhooks import stripe_webhook

app_name = "ticketing"

urlpatterns = [
    path("categories/", CategoryListView.as_view(), name="category-list"),
    path("orders/", OrderCreateView.as_view(), name="order-create"),
    path("orders/confirm/", OrderConfirmView.as_view(), name="order-confirm"),
    path("orders/<uuid:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("scan/", RedeemView.as_view(), name="redeem"),
    path("admin/stats/", DashboardStatsView.as_view(), name="admin-stats"),
    path("admin/orders/", OrderListView.as_view(), name="admin-orders"),
    path("admin/orders/<uuid:order_id>/resend/", ResendConfirmationView.as_view(), name="admin-resend"),
    path("admin/tickets/", TicketListView.as_view(), name="admin-tickets"),
    path("admin/categories/<int:category_id>/", CategoryUpdateView.as_view(), name="admin-category-update"),
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
]
