"""
Coupon API Views.

Implements:
- POST /coupons/validate/ - Checkout preview of a coupon against a cart total
"""
import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import CouponRejectedError, ValidationError
from core.rate_limiting import rate_limit
from .serializers import CouponValidateSerializer
from .services import validate_coupon

logger = logging.getLogger(__name__)


class CouponValidateView(APIView):
    """
    POST: Validate a coupon without recording any usage.

    Rate limited to 20 requests per minute to slow down code guessing.
    """

    @rate_limit(max_requests=20, window_seconds=60)
    def post(self, request):
        serializer = CouponValidateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'success': False, 'message': 'Coupon code is required', 'errors': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        cart_total = serializer.validated_data['cart_total']
        user_id = request.user.id if request.user.is_authenticated else None

        try:
            quote = validate_coupon(serializer.validated_data['code'], user_id, cart_total)
        except (CouponRejectedError, ValidationError) as e:
            logger.info(f"Coupon rejected: {e.message}")
            return Response({'success': False, 'message': e.message}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'success': True,
            'discount': str(quote.discount),
            'final_total': str(max(cart_total - quote.discount, Decimal('0.00'))),
            'code': quote.code,
            'type': quote.type,
        })
