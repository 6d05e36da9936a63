"""Authentication module using password credentials and signed session tokens.

This module provides:
1. Account creation and sign-in backed by the users table
2. Stateless JWT session tokens carrying the user id
3. Request gates (any user, artist only, admin only) for protecting routes

Authorization always uses the role stored on the user record; the role claim
inside a token is informational only.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Callable

import asyncpg
import bcrypt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt

from config import settings_conf
from database import get_pool

# Configure logging
logger = logging.getLogger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72
ROLES = ('artist', 'admin')
DEFAULT_ROLE = 'artist'

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class InvalidCredentialsError(AuthError):
    """Raised when an email/password pair does not match."""
    pass

class UserExistsError(AuthError):
    """Raised when the username or email is already registered."""
    pass

class InvalidTokenError(AuthError):
    """Raised when a token is malformed, forged or names an unknown user."""
    pass

class SessionExpiredError(InvalidTokenError):
    """Raised when a session token has expired."""
    pass

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    encoded = password.encode('utf-8')
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise AuthError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode('utf-8')

def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    encoded = password.encode('utf-8')
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode('utf-8'))
    except ValueError:
        # Corrupt or foreign hash format
        return False

def public_user(row) -> Dict[str, Any]:
    """Convert a user record to its public form (never includes the hash)."""
    return {
        'id': str(row['id']),
        'username': row['username'],
        'email': row['email'],
        'role': row['role']
    }

def _parse_uuid(value) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None

class AuthManager:
    """Manages user accounts and session tokens."""

    def __init__(
        self,
        pool=None,
        secret: Optional[str] = None,
        token_expiry_hours: Optional[int] = None
    ):
        """Initialize auth manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            secret: Token signing secret, defaults to the configured jwt_secret
            token_expiry_hours: Token lifetime, defaults to the configured value
        """
        self.pool = pool
        self.secret = secret or settings_conf['jwt_secret']
        self.token_expiry_hours = token_expiry_hours or settings_conf['token_expiry_hours']

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    def create_token(self, user: Dict[str, Any], expires_in: Optional[timedelta] = None) -> str:
        """Issue a signed session token for a user.

        Args:
            user: Public user dict
            expires_in: Optional lifetime override

        Returns:
            Encoded JWT
        """
        lifetime = expires_in if expires_in is not None else timedelta(hours=self.token_expiry_hours)
        expires_at = datetime.now(timezone.utc) + lifetime
        return jwt.encode(
            {
                'sub': user['id'],
                'role': user['role'],
                'exp': int(expires_at.timestamp())
            },
            self.secret,
            algorithm=JWT_ALGORITHM
        )

    def decode_token(self, token: str) -> str:
        """Validate a token's signature and expiry.

        Returns:
            The user id the token was issued to

        Raises:
            SessionExpiredError: If the token has expired
            InvalidTokenError: If the token is malformed or forged
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except jwt.JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        user_id = payload.get('sub')
        if not user_id:
            raise InvalidTokenError("Invalid token: missing subject")
        return user_id

    async def signup(self, username: str, email: str, password: str) -> Dict[str, Any]:
        """Create an artist account and sign it in.

        Returns:
            Dict containing:
                - token: Session token for future requests
                - user: Public user dict

        Raises:
            UserExistsError: If the username or email is already registered
        """
        await self.ensure_pool()

        password_hash = await asyncio.to_thread(hash_password, password)

        async with self.pool.acquire() as conn:
            existing = await conn.fetchval(
                'SELECT id FROM users WHERE email = $1 OR username = $2',
                email,
                username
            )
            if existing:
                raise UserExistsError("User already exists")

            try:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO users (username, email, password_hash, role)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, username, email, role
                    ''',
                    username,
                    email,
                    password_hash,
                    DEFAULT_ROLE
                )
            except asyncpg.exceptions.UniqueViolationError:
                # Lost a race with a concurrent signup
                raise UserExistsError("User already exists")

        user = public_user(row)
        logger.info(f"Created user {user['username']} ({user['id']})")
        return {'token': self.create_token(user), 'user': user}

    async def signin(self, email: str, password: str) -> Dict[str, Any]:
        """Verify credentials and issue a session token.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password is wrong
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT id, username, email, role, password_hash FROM users WHERE email = $1',
                email
            )

        if not row:
            raise InvalidCredentialsError("Invalid credentials")

        matches = await asyncio.to_thread(verify_password, password, row['password_hash'])
        if not matches:
            raise InvalidCredentialsError("Invalid credentials")

        user = public_user(row)
        return {'token': self.create_token(user), 'user': user}

    async def get_user(self, user_id) -> Optional[Dict[str, Any]]:
        """Look up a user by id, returning None if unknown."""
        parsed = _parse_uuid(user_id)
        if parsed is None:
            return None

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT id, username, email, role FROM users WHERE id = $1',
                parsed
            )
        return public_user(row) if row else None

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Resolve a session token to the user it was issued to.

        Raises:
            SessionExpiredError: If the token has expired
            InvalidTokenError: If the token is invalid or the user no longer exists
        """
        user_id = self.decode_token(token)
        user = await self.get_user(user_id)
        if not user:
            raise InvalidTokenError("User not found")
        return user

    async def set_role(self, email: str, role: str) -> Dict[str, Any]:
        """Change a user's role.

        Raises:
            AuthError: If the role is unknown or the user does not exist
        """
        if role not in ROLES:
            raise AuthError(f"Unknown role: {role}")

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE users SET role = $2
                WHERE email = $1
                RETURNING id, username, email, role
                ''',
                email,
                role
            )
        if not row:
            raise AuthError(f"No user with email {email}")

        logger.info(f"Set role of {email} to {role}")
        return public_user(row)

# Create global instance
manager = AuthManager()

# FastAPI security scheme; missing credentials are reported by the gates
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)

def get_auth_manager() -> AuthManager:
    """FastAPI dependency returning the auth manager."""
    return manager

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    auth: AuthManager = Depends(get_auth_manager)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated user.

    Returns:
        The authenticated user's public dict

    Raises:
        HTTPException: 401 if the credential is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please authenticate"
        )

    try:
        return await auth.verify_token(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        logger.debug(f"Rejected credential: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please authenticate"
        )

def require_role(role: str) -> Callable:
    """Build a gate that only admits users holding ``role``."""
    async def gate(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user['role'] != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only {role}s can perform this action"
            )
        return user

    gate.__name__ = f"require_{role}"
    return gate

require_artist = require_role('artist')
require_admin = require_role('admin')

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'auth_scheme',
    'get_auth_manager',
    'get_current_user',
    'require_role',
    'require_artist',
    'require_admin',
    'hash_password',
    'verify_password',
    'public_user',
    'AuthError',
    'InvalidCredentialsError',
    'UserExistsError',
    'InvalidTokenError',
    'SessionExpiredError'
]
