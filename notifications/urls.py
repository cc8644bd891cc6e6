"""
URL routing for email log administration.
"""
from django.urls import path
from . import views

app_name = 'notifications'

urlpatterns = [
    path('admin/emails/failed/', views.FailedEmailListView.as_view(), name='failed-email-list'),
    path('admin/emails/<int:pk>/retry/', views.EmailRetryView.as_view(), name='email-retry'),
    path('admin/emails/order/<str:order_number>/', views.OrderEmailHistoryView.as_view(), name='order-email-history'),
]
