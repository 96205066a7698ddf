# Collection Names
COLLECTIONS = {
    'users': 'users',
    'projects': 'projects',
    'admins': 'admins',
    'pending_admins': 'pendingAdmins',
    # Per-project sub-collections, resolved with project_collection()
    'units': 'units',
    'unit_requests': 'unitRequests',
    'notifications': 'notifications',
    'bookings': 'bookings',
    'service_bookings': 'serviceBookings',
    'orders': 'orders',
    'complaints': 'complaints',
    'support_tickets': 'supportTickets',
    'fines': 'fines',
    'gate_passes': 'gatePasses',
    'device_reset_requests': 'deviceKeyResetRequests',
    'stores': 'stores',
    'news': 'news',
    # Per-user sub-collection, resolved with user_collection()
    'user_tokens': 'tokens',
}

# Collections that live at the root rather than under projects/{projectId}
ROOT_COLLECTIONS = {'users', 'projects', 'admins', 'pending_admins'}


def project_collection(project_id: str, name: str) -> str:
    """Path of a per-project sub-collection, e.g. projects/p1/unitRequests"""
    if name in ROOT_COLLECTIONS:
        raise ValueError(f"'{name}' is a root collection")
    return f"{COLLECTIONS['projects']}/{project_id}/{COLLECTIONS[name]}"


def user_collection(user_id: str, name: str) -> str:
    return f"{COLLECTIONS['users']}/{user_id}/{COLLECTIONS[name]}"


# Collection Structure Documentation
COLLECTION_SCHEMAS = {
    'users': {
        'fields': ['firstName', 'lastName', 'email', 'mobile', 'nationalId', 'dateOfBirth', 'gender',
                   'projects', 'approvalStatus', 'registrationStatus', 'isDeleted', 'migrated', 'oldId',
                   'createdAt', 'updatedAt'],
        'required': ['email', 'projects'],
        'indexes': ['createdAt', 'approvalStatus', 'isDeleted']
    },
    'units': {
        'fields': ['buildingNum', 'unitNum', 'floor', 'developer'],
        'required': ['buildingNum', 'unitNum'],
        'indexes': ['buildingNum', 'unitNum']
    },
    'unit_requests': {
        'fields': ['userId', 'userName', 'userEmail', 'projectId', 'projectName', 'unit', 'role', 'status',
                   'requestedAt', 'approvedAt', 'approvedBy', 'rejectedAt', 'rejectedBy', 'rejectionReason'],
        'required': ['userId', 'projectId', 'unit', 'role', 'status'],
        'indexes': ['status', 'requestedAt', 'userId']
    },
    'notifications': {
        'fields': ['projectId', 'projectName', 'title_en', 'title_ar', 'body_en', 'body_ar', 'type', 'sendNow',
                   'scheduledAt', 'audience', 'createdBy', 'createdAt', 'status', 'sentAt', 'meta'],
        'required': ['projectId', 'title_en', 'body_en', 'audience'],
        'indexes': ['status', 'createdAt']
    },
    'device_reset_requests': {
        'fields': ['userId', 'projectId', 'status', 'requestedAt', 'resolvedAt', 'resolvedBy', 'adminNotes'],
        'required': ['userId', 'projectId', 'status'],
        'indexes': ['status', 'requestedAt']
    },
    'user_tokens': {
        'fields': ['token', 'isActive', 'platform', 'updatedAt'],
        'required': ['token'],
        'indexes': ['isActive']
    },
}
