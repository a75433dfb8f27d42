from bizdesk.actions.registry import workspace_action
from bizdesk.core.exceptions import ValidationException
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.permission import Permission
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.security_schemas import FileUploadCheck, FileUploadVerdict


@workspace_action(
    "files.validate_upload",
    FileUploadCheck,
    permissions=[Permission.EXPENSES_CREATE],
)
def validate_upload(data: FileUploadCheck, context: ServerActionContext):
    """Screen an attachment (e.g. an expense receipt) before the client uploads it"""
    verdict = context.security.validate_file_upload(data.file_name, data.file_size, data.content_type)
    if not verdict.valid:
        raise ValidationException("; ".join(verdict.errors), code="invalid_file", field="file_name")
    return success_result(FileUploadVerdict(valid=True, errors=[]), "File accepted")
