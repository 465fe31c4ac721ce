# roomchat/client/room_code.py

import secrets
import string

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_id(length: int = ROOM_CODE_LENGTH) -> str:
    """
    Random uppercase alphanumeric room code, e.g. ``"K3ZQ8A"``.

    No uniqueness check is made: a collision just means both parties end up
    in the same room, which is how the server treats a repeated code.
    """
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))
