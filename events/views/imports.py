from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework import status

from events.importer import RegistrationImporter, read_upload
from events.policies import RegistrationPolicy
from events.serializers import ImportRowSerializer
from .generics import api_error


class RegistrationImportView(APIView):
    """
    POST /api/events/registrations/import/

    Either multipart with a `file` (.csv / .xlsx) or JSON {"rows": [...]}.
    Row problems come back in `errors`; the call itself still succeeds.
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    throttle_scope = "registration-import"

    def post(self, request):
        if not RegistrationPolicy.is_coach(request.user):
            return api_error("Only coaches can import registrations", status.HTTP_403_FORBIDDEN, code="permission_denied")

        upload = request.FILES.get("file")
        if upload is not None:
            rows = read_upload(upload)
        else:
            serializer = ImportRowSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            rows = serializer.validated_data["rows"]

        result = RegistrationImporter(request.user).run(rows)
        return Response(result.to_dict(), status=status.HTTP_200_OK)
