"""
Message bodies for material delivery and account notifications.
"""
import html
from datetime import datetime
from typing import Optional

from database.schemas import Account, Material
import config


def format_file_size(size: int) -> str:
    """Human readable file size (``2 MB``, ``1.5 KB``)."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = 0
    value = float(size)
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    return f"{value:g} {units[index]}"


def _timestamp() -> str:
    return datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC")


def material_email_subject(material: Material) -> str:
    return f"StudyQ Material: {material.title}"


def material_email_body(student: Account, material: Material, download_url: str) -> str:
    return f"""Dear Student,

Your requested study material is ready for download:

MATERIAL DETAILS:
Title: {material.title}
Subject: {material.subject}
Semester: {material.semester}
Academic Year: {material.academicYear}
Description: {material.description or 'No description provided'}

REQUESTED BY:
Name: {student.full_name}
Student ID: {student.username}
Email: {student.email}

DOWNLOAD LINK:
{download_url}

DOWNLOAD INSTRUCTIONS:
- This link is valid for {config.DOWNLOAD_LINK_EXPIRE_HOURS} hours
- File size: {format_file_size(material.fileSize)}
- File type: {material.fileType}

Contact your teacher or administrator if you have any questions.

Best regards,
StudyQ Team

---
Material uploaded by: {material.uploadedByName or 'Unknown'}
Delivery timestamp: {_timestamp()}
"""


def material_whatsapp_body(student: Account, material: Material, download_url: str) -> str:
    return f"""*StudyQ - Material Delivery*

Hi! Your study material is ready.

*{material.title}*
Subject: {material.subject}
Semester: {material.semester}
Year: {material.academicYear}

*Requested by:*
{student.full_name} ({student.username})

*Download Link:*
{download_url}

Valid for {config.DOWNLOAD_LINK_EXPIRE_HOURS} hours
Need help? Contact your teacher

*StudyQ Team*
Delivered: {_timestamp()}
"""


def login_credentials_body(account: Account, password: str) -> str:
    student_info = ""
    if account.academicYear is not None:
        student_info = f"Academic Year: {account.academicYear}\nCurrent Semester: {account.currentSemester}\n"
    return f"""Dear {account.full_name},

Your account has been created on StudyQ. Please use the following credentials to log in:

LOGIN DETAILS:
Username: {account.username}
Password: {password}
Login URL: {config.PUBLIC_BASE_URL}

ACCOUNT INFORMATION:
Role: {account.role.value.capitalize()}
{student_info}
IMPORTANT SECURITY NOTICE:
- You will be required to change your password on first login
- Please keep your credentials secure and do not share them

Best regards,
StudyQ Administration Team
"""


def password_reset_body(account: Account, password: str) -> str:
    return f"""Dear {account.full_name},

Your password has been reset by the system administrator.

NEW LOGIN CREDENTIALS:
Username: {account.username}
New Password: {password}
Login URL: {config.PUBLIC_BASE_URL}

SECURITY NOTICE:
- You will be required to change this password on your next login
- Do not share these credentials with anyone

If you did not request this password reset, please contact your administrator immediately.

Best regards,
StudyQ Administration Team
"""


def provider_test_body(channel: str) -> str:
    return f"""StudyQ {channel} Service Test

This is a test message to verify that StudyQ {channel} delivery is working correctly.
Timestamp: {_timestamp()}

StudyQ System Administration
"""


def wrap_email_html(content: str, material_title: Optional[str] = None, material_url: Optional[str] = None) -> str:
    """Render a plain text body into the branded HTML email layout."""
    body = html.escape(content).replace("\n", "<br>")
    material_block = ""
    if material_title:
        link = ""
        if material_url:
            link = (f'<a href="{html.escape(material_url, quote=True)}" '
                    f'style="display: inline-block; background: #2563EB; color: white; padding: 12px 24px; '
                    f'text-decoration: none; border-radius: 6px; margin: 10px 0;">Download Material</a>')
        material_block = f"""
        <div style="background: white; padding: 15px; border-radius: 6px; margin: 15px 0; border-left: 4px solid #2563EB;">
            <h3>{html.escape(material_title)}</h3>
            {link}
        </div>"""
    return f"""
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #2563EB; color: white; padding: 20px; border-radius: 8px 8px 0 0; text-align: center;">
        <h1>StudyQ</h1>
        <p>Smart Study Material Platform</p>
    </div>
    <div style="background: #f8f9fa; padding: 20px; border-radius: 0 0 8px 8px;">{material_block}
        <div>{body}</div>
    </div>
    <div style="margin-top: 20px; padding-top: 20px; border-top: 1px solid #ddd; font-size: 12px; color: #666;">
        <p>This is an automated message from StudyQ Platform.</p>
        <p>&copy; {datetime.utcnow().year} StudyQ. All rights reserved.</p>
    </div>
</body>
</html>
"""
