"""
URL routing for payment provider callbacks.
"""
from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    path('payments/payhere/notify/', views.PayHereNotifyView.as_view(), name='payhere-notify'),
]
