def success_response(data=None, message=None):
    return {"success": True, "data": data, "message": message}


def error_response(error, error_type="error"):
    return {"success": False, "error": error, "error_type": error_type}


def paginated(items, pagination, message=None):
    return success_response({"items": items, "pagination": pagination}, message)
