"""
Payment API Views.

Implements:
- POST /payments/payhere/notify/ - PayHere server-to-server notification
"""
import logging

from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import InvalidSignatureError, StorefrontError
from .serializers import PayHereNotificationSerializer
from .services import WebhookOutcome, reconcile_payhere_notification

logger = logging.getLogger(__name__)

OUTCOME_MESSAGES = {
    WebhookOutcome.PROMOTED: 'Order Created',
    WebhookOutcome.PROMOTED_FOR_REVIEW: 'Order Created (pending review)',
    WebhookOutcome.DUPLICATE: 'Already Processed',
    WebhookOutcome.DISCARDED: 'Payment Failed/Cancelled',
    WebhookOutcome.AWAITING: 'Payment Pending',
}


class PayHereNotifyView(APIView):
    """
    POST: Reconcile one PayHere notification.

    Unauthenticated by necessity; authenticity comes from the md5sig.
    Every outcome except an unknown order or a rejected signature answers
    200 so PayHere stops redelivering.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [FormParser, MultiPartParser]

    def post(self, request):
        serializer = PayHereNotificationSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Malformed PayHere notification: {serializer.errors}")
            return Response(
                {'error': 'Validation Error', 'detail': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        payload = serializer.validated_data
        try:
            outcome = reconcile_payhere_notification(payload)
        except InvalidSignatureError as e:
            logger.warning(
                f"SECURITY: rejected PayHere notification for Order #{payload['order_id']} "
                f"from {request.META.get('REMOTE_ADDR', 'unknown')}"
            )
            return Response({'error': e.message}, status=status.HTTP_400_BAD_REQUEST)
        except StorefrontError as e:
            logger.warning(f"PayHere notification for Order #{payload['order_id']} rejected: {e.message}")
            return Response({'error': e.message}, status=e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error processing PayHere notification: {e}")
            return Response(
                {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        if outcome == WebhookOutcome.UNKNOWN_ORDER:
            return Response({'error': 'Order not found or expired'}, status=status.HTTP_404_NOT_FOUND)

        return Response({'message': OUTCOME_MESSAGES[outcome], 'outcome': outcome.value})
