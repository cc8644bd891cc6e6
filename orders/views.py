"""
Order API Views.

Implements:
- POST /orders/ - Place an order (COD commits, PayHere returns signed params)
- GET /orders/track/{token}/ - Guest order tracking
- PATCH /orders/track/{token}/cancel/ - Guest cancellation
- GET /orders/mine/ - Customer's own orders
- GET /orders/mine/{id}/ - Customer's own order detail
- PATCH /orders/mine/{id}/cancel/ - Customer cancellation
- GET /admin/orders/ - All orders, filterable by status
- GET /admin/orders/{id}/ - Order detail with reconciliation fields
- PATCH /admin/orders/{id}/status/ - Fulfillment status change
- POST /admin/orders/{id}/refund/ - Refund an online order
"""
import logging

from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import StorefrontError
from core.rate_limiting import rate_limit
from .fulfillment import cancel_order_by_customer, transition_order
from .models import Order
from .serializers import (
    AdminOrderSerializer,
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
)
from .services import place_order

logger = logging.getLogger(__name__)


def error_response(error: StorefrontError) -> Response:
    return Response(
        {'error': error.__class__.__name__, 'detail': error.message},
        status=error.status_code
    )


def server_error_response() -> Response:
    return Response(
        {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


# =============================================================================
# Checkout
# =============================================================================

class OrderCreateView(APIView):
    """
    POST: Place an order for a guest or a logged-in customer.

    Returns:
        - 201: COD order committed
        - 200: PayHere order parked, body carries payhere_params
        - 400: Validation, stock or coupon error
        - 429: Rate limited
        - 500: Payment gateway not configured
    """

    @rate_limit(max_requests=20, window_seconds=60)
    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        address = data.get('address')
        try:
            result = place_order(
                items=[dict(item) for item in data['items']],
                payment_method=data['payment_method'],
                user=request.user,
                email=data.get('email'),
                address=dict(address) if address else None,
                address_id=data.get('address_id'),
                coupon_code=data.get('coupon_code'),
            )
        except StorefrontError as e:
            logger.warning(f"Order placement failed: {e.message}")
            return error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error creating order: {e}")
            return server_error_response()

        if result.order is not None:
            return Response(
                {
                    'message': 'Order placed successfully',
                    'order_number': result.order_number,
                    'guest_token': result.guest_token,
                    'order': OrderSerializer(result.order).data,
                },
                status=status.HTTP_201_CREATED
            )

        return Response({
            'message': 'Proceed to payment',
            'order_number': result.order_number,
            'guest_token': result.guest_token,
            'payhere_params': result.payment_request,
        })


# =============================================================================
# Guest tracking
# =============================================================================

class GuestOrderTrackView(APIView):
    """GET: Order detail by guest token, until delivery or cancellation."""

    def get(self, request, token):
        order = get_object_or_404(Order, guest_token=token)
        if not order.guest_tracking_open:
            return Response(
                {
                    'error': 'Tracking closed',
                    'detail': f"Order #{order.order_number} is {order.get_status_display().lower()}",
                    'status': order.status,
                },
                status=status.HTTP_410_GONE
            )
        return Response(OrderSerializer(order).data)


class GuestOrderCancelView(APIView):
    """PATCH: Guest cancels an order the shop has not confirmed yet."""

    def patch(self, request, token):
        order = get_object_or_404(Order, guest_token=token)
        try:
            order = cancel_order_by_customer(order)
        except StorefrontError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data)


# =============================================================================
# Customer orders
# =============================================================================

class MyOrderListView(generics.ListAPIView):
    """GET: The logged-in customer's orders, newest first."""
    serializer_class = OrderListSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).order_by('-created_at')


class MyOrderDetailView(generics.RetrieveAPIView):
    """GET: One of the customer's orders; other people's orders are 404."""
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user)


class MyOrderCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        order = get_object_or_404(Order, pk=pk, user=request.user)
        try:
            order = cancel_order_by_customer(order)
        except StorefrontError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data)


# =============================================================================
# Admin
# =============================================================================

class AdminOrderListView(generics.ListAPIView):
    """
    GET: All orders.

    Query Parameters:
        - status: Filter by status
        - requires_review: 'true' to list only flagged payments
    """
    serializer_class = OrderListSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        queryset = Order.objects.all()

        status_filter = self.request.query_params.get('status', '').upper()
        if status_filter in Order.Status.values:
            queryset = queryset.filter(status=status_filter)

        if self.request.query_params.get('requires_review', '').lower() == 'true':
            queryset = queryset.filter(requires_review=True)

        return queryset.order_by('-created_at')


class AdminOrderDetailView(generics.RetrieveAPIView):
    serializer_class = AdminOrderSerializer
    permission_classes = [IsAdminUser]
    queryset = Order.objects.all()


class AdminOrderStatusView(APIView):
    """
    PATCH: Move an order through the fulfillment workflow.

    Request Body:
    {
        "status": "SHIPPED",
        "tracking_number": "TRK123"
    }
    """
    permission_classes = [IsAdminUser]

    def patch(self, request, pk):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = transition_order(
                pk,
                serializer.validated_data['status'],
                tracking_number=serializer.validated_data.get('tracking_number'),
            )
        except Order.DoesNotExist:
            return Response({'error': 'Not Found', 'detail': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
        except StorefrontError as e:
            logger.info(f"Status change refused for order {pk}: {e.message}")
            return error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error updating order {pk}: {e}")
            return server_error_response()

        return Response(AdminOrderSerializer(order).data)


class AdminOrderRefundView(APIView):
    """POST: Mark an online-paid order refunded and put its stock back."""
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        try:
            order = transition_order(pk, Order.Status.REFUNDED)
        except Order.DoesNotExist:
            return Response({'error': 'Not Found', 'detail': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
        except StorefrontError as e:
            return error_response(e)

        return Response(AdminOrderSerializer(order).data)
