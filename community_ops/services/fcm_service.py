from typing import List, Dict, Any, Optional
from firebase_admin import messaging
import logging
from ..database.database_service import database_service
from ..database.collections import user_collection

logger = logging.getLogger(__name__)

class FCMService:
    """Firebase Cloud Messaging service for push notifications"""

    def __init__(self, db=None):
        self.db = db or database_service

    async def send_to_multiple_tokens(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Send notifications to multiple device tokens"""
        try:
            message = messaging.MulticastMessage(
                notification=messaging.Notification(
                    title=title,
                    body=body,
                ),
                data=data or {},
                tokens=tokens,
            )

            response = messaging.send_each_for_multicast(message)
            logger.info(f"Successfully sent {response.success_count} messages")

            if response.failure_count > 0:
                logger.warning(f"Failed to send {response.failure_count} messages")
                for idx, resp in enumerate(response.responses):
                    if not resp.success:
                        logger.error(f"Failed to send to token {tokens[idx][:20]}...: {resp.exception}")

            return {
                "success_count": response.success_count,
                "failure_count": response.failure_count,
            }

        except Exception as e:
            logger.error(f"Error sending multicast FCM notification: {str(e)}")
            return {"success_count": 0, "failure_count": len(tokens), "error": str(e)}

    async def get_user_tokens(self, user_id: str) -> List[str]:
        """Get all active FCM tokens for a user (users/{uid}/tokens)"""
        try:
            success, tokens_data, error = await self.db.query_documents(
                user_collection(user_id, 'user_tokens')
            )

            if success:
                # Tokens without an explicit isActive flag are treated as active
                return [
                    token['token'] for token in tokens_data
                    if token.get('token') and token.get('isActive') is not False
                ]
            else:
                logger.error(f"Error getting user tokens: {error}")
                return []

        except Exception as e:
            logger.error(f"Error getting user tokens: {str(e)}")
            return []

    async def send_notification_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None
    ) -> bool:
        """Push to every active device of a user. False when nothing was delivered."""
        tokens = await self.get_user_tokens(user_id)
        if not tokens:
            logger.info(f"No active FCM tokens for user {user_id}")
            return False

        # FCM data payload values must be strings
        str_data = {k: str(v) for k, v in (data or {}).items() if v is not None}
        result = await self.send_to_multiple_tokens(tokens, title, body, str_data)
        return result.get("success_count", 0) > 0


fcm_service = FCMService()
