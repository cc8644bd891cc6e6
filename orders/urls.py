"""
URL routing for order API endpoints.
"""
from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    path('orders/', views.OrderCreateView.as_view(), name='order-create'),
    path('orders/track/<uuid:token>/', views.GuestOrderTrackView.as_view(), name='order-track'),
    path('orders/track/<uuid:token>/cancel/', views.GuestOrderCancelView.as_view(), name='order-track-cancel'),
    path('orders/mine/', views.MyOrderListView.as_view(), name='my-order-list'),
    path('orders/mine/<int:pk>/', views.MyOrderDetailView.as_view(), name='my-order-detail'),
    path('orders/mine/<int:pk>/cancel/', views.MyOrderCancelView.as_view(), name='my-order-cancel'),
    path('admin/orders/', views.AdminOrderListView.as_view(), name='admin-order-list'),
    path('admin/orders/<int:pk>/', views.AdminOrderDetailView.as_view(), name='admin-order-detail'),
    path('admin/orders/<int:pk>/status/', views.AdminOrderStatusView.as_view(), name='admin-order-status'),
    path('admin/orders/<int:pk>/refund/', views.AdminOrderRefundView.as_view(), name='admin-order-refund'),
]
