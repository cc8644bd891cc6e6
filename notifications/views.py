"""
Email Log API Views (staff only).

Implements:
- GET /admin/emails/failed/ - Permanently failed emails, paginated
- POST /admin/emails/{id}/retry/ - Re-queue a failed email
- GET /admin/emails/order/{order_number}/ - Every email sent for an order
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import EmailLog
from .serializers import EmailLogSerializer
from .services import retry_failed_email

logger = logging.getLogger(__name__)


class FailedEmailListView(generics.ListAPIView):
    serializer_class = EmailLogSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        return EmailLog.objects.filter(status=EmailLog.Status.PERMANENTLY_FAILED).order_by('-created_at')


class EmailRetryView(APIView):
    """POST: Reset a failed email and hand it back to the delivery worker."""
    permission_classes = [IsAdminUser]

    def post(self, request, pk):
        try:
            log = retry_failed_email(pk)
        except EmailLog.DoesNotExist:
            return Response({'error': 'Not Found', 'detail': 'Email log not found'}, status=status.HTTP_404_NOT_FOUND)
        except ValueError as e:
            return Response({'error': 'Validation Error', 'detail': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        logger.info(f"Email #{log.id} re-queued by {request.user}")
        return Response({'message': 'Email queued for retry', 'email': EmailLogSerializer(log).data})


class OrderEmailHistoryView(generics.ListAPIView):
    serializer_class = EmailLogSerializer
    permission_classes = [IsAdminUser]
    pagination_class = None

    def get_queryset(self):
        return EmailLog.objects.filter(order_number=self.kwargs['order_number']).order_by('-created_at')
