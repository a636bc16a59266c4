import logging

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, parser_classes
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from trackops.core.exceptions import ImportFileError
from trackops.core.permissions import action_permission
from trackops.core.utils import create_audit_log
from .importer import import_jobs, build_template

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _run(request, dry_run):
    upload = request.FILES.get('file')
    if upload is None:
        return Response({'error': 'No file uploaded. Send the workbook as "file".'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        summary = import_jobs(upload, user=request.user, dry_run=dry_run)
    except ImportFileError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    if not dry_run:
        create_audit_log(
            request=request,
            action='data_import',
            model_name='job',
            object_id=upload.name,
            object_name=upload.name,
            changes={
                'total_rows': summary['total_rows'],
                'success_count': summary['success_count'],
                'warning_count': summary['warning_count'],
                'failed_count': summary['failed_count'],
            },
        )
    return Response(summary)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('migration.read')])
@parser_classes([MultiPartParser, FormParser])
def validate_jobs(request):
    """Dry run: report per-row problems without writing anything"""
    return _run(request, dry_run=True)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('migration.create')])
@parser_classes([MultiPartParser, FormParser])
def import_jobs_view(request):
    return _run(request, dry_run=False)


@api_view(['GET'])
@permission_classes([IsAuthenticated, action_permission('migration.read')])
def download_template(request):
    response = HttpResponse(build_template(), content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = 'attachment; filename="job_import_template.xlsx"'
    return response
