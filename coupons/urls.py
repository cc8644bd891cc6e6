"""
URL routing for coupon API endpoints.
"""
from django.urls import path
from . import views

app_name = 'coupons'

urlpatterns = [
    path('coupons/validate/', views.CouponValidateView.as_view(), name='coupon-validate'),
]
