import logging
import uuid
import zipfile
from datetime import datetime, timedelta
from io import BytesIO

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils.exceptions import InvalidFileException
from pymongo.errors import PyMongoError

from database import admins_collection, excel_files_collection, internships_collection, users_collection
from errors import NotFound, ValidationError
from internship_utils import new_internship_document, split_requirements

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Raw bytes are kept inline in the provenance record, under the 16 MB BSON limit
MAX_STORED_FILE_BYTES = 15 * 1024 * 1024

# =====================================================
# 📥 BULK IMPORT
# =====================================================

# Accepted header spellings per field, tried in order
FIELD_ALIASES = {
    "title": ["title", "Title", "position", "Position"],
    "company": ["company", "Company", "companyName", "Company Name"],
    "location": ["location", "Location", "city", "City"],
    "domain": ["domain", "Domain", "category", "Category"],
    "position": ["position", "Position", "role", "Role"],
    "salary": ["salary", "Salary", "stipend", "Stipend"],
    "type": ["type", "Type", "workType", "Work Type"],
    "duration": ["duration", "Duration", "period", "Period"],
    "description": ["description", "Description", "details", "Details"],
    "requirements": ["requirements", "Requirements", "skills", "Skills"],
    "source": ["source", "Source"],
    "companyWebsite": ["companyWebsite", "Company Website", "website", "Website"],
    "companyEmail": ["companyEmail", "Company Email", "email", "Email"],
    "applicationLink": ["applicationLink", "Application Link", "link", "Link"],
    "stipendRange": ["stipendRange", "Stipend Range", "salaryRange", "Salary Range"],
}

# Used when none of a field's aliases has a value
FIELD_DEFAULTS = {
    "title": "Internship",
    "company": "Unknown Company",
    "location": "Not specified",
    "domain": "General",
    "position": "Intern",
    "salary": 0,
    "type": "Full-time",
    "duration": "3 months",
    "description": "No description provided",
    "requirements": "",
    "source": "Excel Upload",
    "companyWebsite": "",
    "companyEmail": "",
    "applicationLink": "",
    "stipendRange": "",
}


def resolve_field(row, field):
    for alias in FIELD_ALIASES[field]:
        value = row.get(alias)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return FIELD_DEFAULTS[field]


def parse_salary_cell(value):
    """Lenient salary parsing: anything unusable becomes 0"""
    if isinstance(value, bool):
        return 0
    try:
        salary = int(float(str(value).replace(",", "").strip()))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(salary, 0)


def build_internship_from_row(row):
    fields = {}
    for field in FIELD_ALIASES:
        value = resolve_field(row, field)
        if field == "salary":
            fields[field] = parse_salary_cell(value)
        elif field == "requirements":
            fields[field] = split_requirements(value)
        else:
            fields[field] = str(value).strip()
    fields["isActive"] = True
    return new_internship_document(fields)


def read_rows(file_bytes):
    """Rows of the first sheet as dicts keyed by the header row"""
    try:
        workbook = load_workbook(BytesIO(file_bytes), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        logger.warning("⚠️ Unreadable spreadsheet: %s", e)
        raise ValidationError("Invalid Excel file. Please upload an .xlsx workbook")

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        headers = [str(h).strip() if h is not None else None for h in header]

        records = []
        for values in rows:
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                continue
            records.append({h: v for h, v in zip(headers, values) if h})
        return records
    finally:
        workbook.close()


def import_spreadsheet(file_bytes, original_name, uploaded_by, content_type=XLSX_MIMETYPE):
    """Create postings from an uploaded workbook.

    Bad rows are logged and skipped; the upload fails only when no row at all
    yields a posting. Returns the created documents, the per-row error list and
    the provenance record id.
    """
    if len(file_bytes) > MAX_STORED_FILE_BYTES:
        raise ValidationError("Excel file is too large. Maximum size is 15 MB")

    rows = read_rows(file_bytes)

    internships = []
    errors = []
    # Row numbers match the sheet: header is row 1
    for row_number, row in enumerate(rows, start=2):
        try:
            internships.append(build_internship_from_row(row))
        except Exception as e:
            logger.warning("⚠️ Skipping row %d of %s: %s", row_number, original_name, e)
            errors.append(f"Row {row_number}: {e}")

    if not internships:
        raise ValidationError("No valid internship data found in Excel file")

    excel_file = {
        "_id": str(uuid.uuid4()),
        "filename": f"excel-{uuid.uuid4().hex}.xlsx",
        "originalName": original_name,
        "data": file_bytes,
        "contentType": content_type or XLSX_MIMETYPE,
        "size": len(file_bytes),
        "internshipsCreated": len(internships),
        "errorCount": len(errors),
        "uploadedBy": uploaded_by,
        "createdAt": datetime.utcnow(),
    }
    # Provenance goes first so postings never exist without it
    excel_files_collection().insert_one(excel_file)
    try:
        internships_collection().insert_many(internships)
    except PyMongoError:
        excel_files_collection().delete_one({"_id": excel_file["_id"]})
        raise

    logger.info("✅ Imported %d internships from %s (%d rows skipped)", len(internships), original_name, len(errors))
    return {
        "internships": internships,
        "errors": errors,
        "excelFileId": excel_file["_id"],
    }


def list_excel_files():
    files = list(excel_files_collection().find({}, {"data": 0}).sort("createdAt", -1))
    admin_ids = {f.get("uploadedBy") for f in files}
    admins = {
        a["_id"]: a["username"]
        for a in admins_collection().find({"_id": {"$in": list(admin_ids)}}, {"username": 1})
    }

    for f in files:
        f["id"] = str(f.pop("_id"))
        f["uploadedBy"] = {"id": f.get("uploadedBy"), "username": admins.get(f.get("uploadedBy"))}
        if isinstance(f.get("createdAt"), datetime):
            f["createdAt"] = f["createdAt"].isoformat()
    return files


def get_excel_file(file_id):
    excel_file = excel_files_collection().find_one({"_id": file_id})
    if not excel_file:
        raise NotFound("Excel file not found")
    return excel_file


# =====================================================
# 📤 USER EXPORT
# =====================================================

def _education(user, block, key):
    return (user.get(block) or {}).get(key) or ""


def _yes_no(value):
    return "Yes" if value else "No"


def _format(value, fmt):
    return value.strftime(fmt) if isinstance(value, datetime) else ""


USER_EXPORT_COLUMNS = [
    ("Name", lambda u: u.get("name", "")),
    ("Email", lambda u: u.get("email", "")),
    ("Phone", lambda u: u.get("phone", "")),
    ("Current City", lambda u: u.get("currentCity") or ""),
    ("Future Goals", lambda u: u.get("futureGoals") or ""),
    ("Study Preference", lambda u: u.get("studyPreference") or ""),
    ("Section", lambda u: u.get("section") or ""),
    ("Higher Education", lambda u: u.get("higherEducation") or ""),
    ("12th Institution", lambda u: _education(u, "twelfthPU", "institution")),
    ("12th Year", lambda u: _education(u, "twelfthPU", "passedYear")),
    ("12th Percentage", lambda u: _education(u, "twelfthPU", "percentage")),
    ("UG Institution", lambda u: _education(u, "ugDegree", "institution")),
    ("UG Course", lambda u: _education(u, "ugDegree", "course")),
    ("UG Year", lambda u: _education(u, "ugDegree", "year")),
    ("UG Percentage", lambda u: _education(u, "ugDegree", "percentage")),
    ("PG Institution", lambda u: _education(u, "pgMasters", "institution")),
    ("PG Course", lambda u: _education(u, "pgMasters", "course")),
    ("PG Year", lambda u: _education(u, "pgMasters", "year")),
    ("PG Percentage", lambda u: _education(u, "pgMasters", "percentage")),
    ("Skills", lambda u: ", ".join(u.get("skills") or [])),
    ("Keywords", lambda u: ", ".join(u.get("keywords") or [])),
    ("Application Count", lambda u: u.get("applicationCount") or 0),
    ("Has Resume", lambda u: _yes_no(u.get("resumeFilename"))),
    ("Resume Filename", lambda u: u.get("resumeFilename") or ""),
    ("Has Profile Picture", lambda u: _yes_no(u.get("profilePictureFilename"))),
    ("Profile Picture Filename", lambda u: u.get("profilePictureFilename") or ""),
    ("Is Verified", lambda u: _yes_no(u.get("isVerified"))),
    ("Registration Date", lambda u: _format(u.get("createdAt"), "%Y-%m-%d")),
    ("Registration Time", lambda u: _format(u.get("createdAt"), "%H:%M:%S")),
    ("Last Updated", lambda u: _format(u.get("updatedAt"), "%Y-%m-%d")),
]

MAX_COLUMN_WIDTH = 50


def _parse_date(value, name):
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d")
    except (AttributeError, ValueError):
        raise ValidationError(f"{name} must be a date in YYYY-MM-DD format")


def build_date_filter(start_date=None, end_date=None):
    """createdAt range; the end date counts as a whole day"""
    created_at = {}
    if start_date:
        created_at["$gte"] = _parse_date(start_date, "startDate")
    if end_date:
        created_at["$lt"] = _parse_date(end_date, "endDate") + timedelta(days=1)
    return {"createdAt": created_at} if created_at else {}


def export_filename(start_date=None, end_date=None, today=None):
    filename = "internx_users_complete_data"
    if start_date and end_date:
        filename += f"_{start_date}_to_{end_date}"
    elif start_date:
        filename += f"_from_{start_date}"
    elif end_date:
        filename += f"_until_{end_date}"
    today = today or datetime.utcnow()
    return f"{filename}_{today.strftime('%Y-%m-%d')}.xlsx"


def export_users(start_date=None, end_date=None):
    """Workbook bytes and download filename for users in the date range"""
    query = build_date_filter(start_date, end_date)
    users = users_collection().find(
        query, {"password": 0, "resume": 0, "profilePicture": 0}
    ).sort("createdAt", -1)

    wb = Workbook()
    ws = wb.active
    ws.title = "Users Data"

    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")

    widths = []
    for col_num, (header, _) in enumerate(USER_EXPORT_COLUMNS, 1):
        cell = ws.cell(row=1, column=col_num, value=header)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center", vertical="center")
        widths.append(len(header))

    row_count = 0
    for row_num, user in enumerate(users, 2):
        row_count += 1
        for col_num, (_, getter) in enumerate(USER_EXPORT_COLUMNS, 1):
            value = getter(user)
            ws.cell(row=row_num, column=col_num, value=value)
            widths[col_num - 1] = max(widths[col_num - 1], len(str(value)))

    for col_num, width in enumerate(widths, 1):
        column_letter = ws.cell(row=1, column=col_num).column_letter
        ws.column_dimensions[column_letter].width = min(width + 2, MAX_COLUMN_WIDTH)

    output = BytesIO()
    wb.save(output)
    logger.info("📤 Exported %d users", row_count)
    return output.getvalue(), export_filename(start_date, end_date)
