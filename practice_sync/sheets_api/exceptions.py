# practice_sync/sheets_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class SheetsAPIError(Exception):
    """Base exception for sheets_api errors."""
    pass

class NotConfiguredError(SheetsAPIError):
    """Raised when a request is attempted without a script URL."""
    pass

class APIConnectionError(SheetsAPIError):
    """Raised for network or connection issues."""
    pass

class APIResponseError(SheetsAPIError):
    """Raised for non-2xx responses, undecodable bodies or an 'error' field in the body."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

class PayloadTooLargeError(SheetsAPIError):
    """Raised when an encoded request exceeds the URL length budget even after truncation."""
    def __init__(self, action: str, url_length: int, max_length: int):
        super().__init__(f"Request for '{action}' is {url_length} chars, budget is {max_length}")
        self.action = action
        self.url_length = url_length
        self.max_length = max_length

#
# End of practice_sync/sheets_api/exceptions.py
########################################################################################################################
