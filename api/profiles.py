import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, UploadFile, File, Form
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, IntegrityError, SQLAlchemyError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from database import get_db
from errors import InvalidCredentials, ProfileNotFound, StorageError, ValidationError
from models.profile import EDITABLE_FIELDS, Profile
from schemas.profile import LoginRequest, ProfileDTO, ProfileResponse
from schemas.verification_code import ActionResponse
from utils.logger_factory import new_logger
from utils.passwords import hash_password, verify_password
from utils.upload_storage import delete_upload, save_upload

router = APIRouter(tags=["profiles"])

profile_retry_logger = new_logger("fetch_profile_retry")


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(profile_retry_logger, logging.WARNING),
    reraise=True
)
def fetch_profile_by_id(db: Session, profile_id: int):
    try:
        return db.query(Profile).filter_by(id=profile_id).first()
    except OperationalError:
        db.rollback()
        raise


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(profile_retry_logger, logging.WARNING),
    reraise=True
)
def fetch_profiles(db: Session, department: Optional[str] = None, subject: Optional[str] = None):
    try:
        query = db.query(Profile)
        if department:
            query = query.filter(Profile.department == department)
        if subject:
            query = query.filter(Profile.subject_to_teach == subject)
        return query.order_by(Profile.id).all()
    except OperationalError:
        db.rollback()
        raise


def _commit(db: Session, log, action: str):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        log.info(f"{action} rejected: email already registered")
        raise ValidationError("Email is already registered")
    except SQLAlchemyError:
        db.rollback()
        log.exception(f"Database commit failed in {action}.")
        raise StorageError()


@router.post("/profiles", response_model=ProfileResponse)
async def create_profile(
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    salary_range: Optional[str] = Form(None),
    subject_to_teach: Optional[str] = Form(None),
    whatsapp_number: Optional[str] = Form(None),
    photo: UploadFile = File(None),
    id_photo: UploadFile = File(None),
    db: Session = Depends(get_db),
):
    log = new_logger("create_profile")
    if not password:
        raise ValidationError("Password is required")
    if not email or not email.strip():
        raise ValidationError("Email is required")
    email = email.strip()
    log.info(f"Creating profile for {email}")

    fields = {
        'full_name': full_name,
        'email': email,
        'address': address,
        'department': department,
        'salary_range': salary_range,
        'subject_to_teach': subject_to_teach,
        'whatsapp_number': whatsapp_number,
    }
    # Uploads are read on the event loop; everything touching the database runs in a worker thread
    if photo:
        fields['photo'] = await save_upload(photo)
    if id_photo:
        fields['id_photo'] = await save_upload(id_photo)

    try:
        profile = await run_in_threadpool(create_profile_db_logic, fields, password, db, log)
    except Exception:
        delete_upload(fields.get('photo'))
        delete_upload(fields.get('id_photo'))
        raise
    return ProfileResponse(message="Profile created successfully!", user=ProfileDTO.from_model(profile))


def create_profile_db_logic(fields: dict, password: str, db: Session, log) -> Profile:
    if db.query(Profile.id).filter(Profile.email == fields['email']).first() is not None:
        raise ValidationError("Email is already registered")
    profile = Profile(password=hash_password(password), **fields)
    db.add(profile)
    _commit(db, log, "create_profile")
    db.refresh(profile)
    log.info(f"Profile created [{profile.id}, {profile.email}]")
    return profile


@router.post("/login", response_model=ProfileResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    log = new_logger("login")
    email = payload.email.strip()
    log.info(f"Login attempt for {email}")
    try:
        profile = db.query(Profile).filter(Profile.email == email).first()
    except SQLAlchemyError:
        log.exception("Profile lookup failed during login.")
        raise StorageError()
    # Same error for unknown email and wrong password
    if profile is None or not verify_password(payload.password, profile.password):
        log.info(f"Login failed for {email}")
        raise InvalidCredentials()
    log.info(f"Login succeeded for profile [{profile.id}]")
    return ProfileResponse(message="Login successful!", user=ProfileDTO.from_model(profile))


@router.get("/profiles", response_model=List[ProfileDTO])
def list_profiles(
    department: Optional[str] = None,
    subject: Optional[str] = None,
    db: Session = Depends(get_db),
):
    log = new_logger("list_profiles")
    log.info(f"Listing profiles [department={department}, subject={subject}]")
    try:
        profiles = fetch_profiles(db, department, subject)
    except SQLAlchemyError:
        log.exception("Failed to list profiles.")
        raise StorageError()
    return [ProfileDTO.from_model(p) for p in profiles]


@router.get("/profiles/{profile_id}", response_model=ProfileDTO)
def get_profile(profile_id: int, db: Session = Depends(get_db)):
    log = new_logger("get_profile")
    try:
        profile = fetch_profile_by_id(db, profile_id)
    except SQLAlchemyError:
        log.exception(f"Failed to fetch profile [{profile_id}].")
        raise StorageError()
    if not profile:
        raise ProfileNotFound()
    return ProfileDTO.from_model(profile)


@router.put("/profiles/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: int,
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    department: Optional[str] = Form(None),
    salary_range: Optional[str] = Form(None),
    subject_to_teach: Optional[str] = Form(None),
    whatsapp_number: Optional[str] = Form(None),
    photo: UploadFile = File(None),
    id_photo: UploadFile = File(None),
    db: Session = Depends(get_db),
):
    log = new_logger("update_profile")
    log.info(f"Updating profile [{profile_id}]")
    if email is not None:
        if not email.strip():
            raise ValidationError("Email is required")
        email = email.strip()

    submitted = {
        'full_name': full_name,
        'email': email,
        'address': address,
        'department': department,
        'salary_range': salary_range,
        'subject_to_teach': subject_to_teach,
        'whatsapp_number': whatsapp_number,
    }
    changes = {field: submitted[field] for field in EDITABLE_FIELDS if submitted[field] is not None}
    # Password changes only when a non-blank value is supplied
    new_password = password if password and password.strip() else None
    if not changes and new_password is None and not photo and not id_photo:
        raise ValidationError("No fields provided to update")

    if photo:
        changes['photo'] = await save_upload(photo)
    if id_photo:
        changes['id_photo'] = await save_upload(id_photo)

    try:
        profile, replaced_files = await run_in_threadpool(
            update_profile_db_logic, profile_id, changes, new_password, db, log
        )
    except Exception:
        delete_upload(changes.get('photo'))
        delete_upload(changes.get('id_photo'))
        raise
    for filename in replaced_files:
        delete_upload(filename)
    return ProfileResponse(message="Profile updated successfully!", user=ProfileDTO.from_model(profile))


def update_profile_db_logic(profile_id: int, changes: dict, new_password: Optional[str], db: Session, log):
    """Apply changes to a stored profile. Returns (profile, filenames of replaced uploads)."""
    profile = fetch_profile_by_id(db, profile_id)
    if not profile:
        raise ProfileNotFound()
    if new_password is not None:
        changes = {**changes, 'password': hash_password(new_password)}

    replaced_files = [
        getattr(profile, field) for field in ('photo', 'id_photo')
        if field in changes and getattr(profile, field)
    ]
    for field, value in changes.items():
        setattr(profile, field, value)
    _commit(db, log, "update_profile")
    db.refresh(profile)
    log.info(f"Profile [{profile.id}] updated fields {sorted(k for k in changes if k != 'password')}")
    return profile, replaced_files


@router.delete("/profiles/{profile_id}", response_model=ActionResponse)
def delete_profile(profile_id: int, db: Session = Depends(get_db)):
    log = new_logger("delete_profile")
    log.info(f"Deleting profile [{profile_id}]")
    profile = fetch_profile_by_id(db, profile_id)
    if not profile:
        raise ProfileNotFound()
    files = [profile.photo, profile.id_photo]
    db.delete(profile)
    _commit(db, log, "delete_profile")
    for filename in files:
        delete_upload(filename)
    return ActionResponse(message="Profile deleted successfully!")
