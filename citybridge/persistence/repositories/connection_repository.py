"""Connection (friendship) repository for async persistence."""

import uuid

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...database import Database
from ...exceptions import ConflictError, DatabaseError
from ...models.connection import Connection, ConnectionStatus
from ...structured_logging.enhanced_logging_config import get_logger
from ...utils.error_logging import log_and_raise

logger = get_logger(__name__)


class ConnectionRepository:
    """Repository for the connections table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_by_id(self, connection_id: int) -> Connection | None:
        try:
            async with self._database.session() as session:
                return await session.get(Connection, connection_id)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading connection: {e}",
                operation="get_by_id",
                table="connections",
                details={"connection_id": connection_id},
            )

    async def get_between(self, a: uuid.UUID, b: uuid.UUID) -> Connection | None:
        """Return the connection row for the unordered pair (a, b), whatever its status."""
        user1_id, user2_id = Connection.ordered_pair(a, b)
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Connection).where(Connection.user1_id == user1_id, Connection.user2_id == user2_id)
                )
                return result.scalars().first()
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading connection pair: {e}",
                operation="get_between",
                table="connections",
                details={"user_a": str(a), "user_b": str(b)},
            )

    async def are_connected(self, a: uuid.UUID, b: uuid.UUID) -> bool:
        """True when a and b share an accepted connection."""
        connection = await self.get_between(a, b)
        return connection is not None and connection.status == ConnectionStatus.ACCEPTED

    async def create_request(self, requester_id: uuid.UUID, addressee_id: uuid.UUID) -> Connection:
        """
        Create a pending connection initiated by requester_id.

        Raises:
            ConflictError: If a row already exists for the pair
        """
        user1_id, user2_id = Connection.ordered_pair(requester_id, addressee_id)
        connection = Connection(
            user1_id=user1_id,
            user2_id=user2_id,
            requested_by=requester_id,
            status=ConnectionStatus.PENDING,
        )
        try:
            async with self._database.session() as session:
                session.add(connection)
                await session.commit()
                await session.refresh(connection)
        except IntegrityError as e:
            log_and_raise(
                ConflictError,
                f"Connection already exists: {e}",
                details={"requester_id": str(requester_id), "addressee_id": str(addressee_id)},
                user_friendly="Connection already exists",
            )
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error creating connection request: {e}",
                operation="create_request",
                table="connections",
                details={"requester_id": str(requester_id), "addressee_id": str(addressee_id)},
            )
        logger.info(
            "Connection request created",
            connection_id=connection.id,
            requester_id=str(requester_id),
            addressee_id=str(addressee_id),
        )
        return connection

    async def set_status(
        self,
        connection_id: int,
        status: ConnectionStatus,
        expected: ConnectionStatus = ConnectionStatus.PENDING,
    ) -> Connection | None:
        """
        Move a connection from the expected status to status in one UPDATE.

        Returns:
            The updated row, or None when no row with that id is in the expected status
        """
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    update(Connection)
                    .where(Connection.id == connection_id, Connection.status == expected)
                    .values(status=status)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return None
                await session.commit()
                return await session.get(Connection, connection_id)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error updating connection: {e}",
                operation="set_status",
                table="connections",
                details={"connection_id": connection_id, "status": status.value},
            )

    async def list_for_user(self, user_id: uuid.UUID, status: ConnectionStatus | None = None) -> list[Connection]:
        try:
            async with self._database.session() as session:
                stmt = select(Connection).where(or_(Connection.user1_id == user_id, Connection.user2_id == user_id))
                if status is not None:
                    stmt = stmt.where(Connection.status == status)
                result = await session.execute(stmt.order_by(Connection.id))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error listing connections: {e}",
                operation="list_for_user",
                table="connections",
                details={"user_id": str(user_id)},
            )

    async def delete(self, connection_id: int) -> bool:
        try:
            async with self._database.session() as session:
                result = await session.execute(delete(Connection).where(Connection.id == connection_id))
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error deleting connection: {e}",
                operation="delete",
                table="connections",
                details={"connection_id": connection_id},
            )

    async def delete_between(self, a: uuid.UUID, b: uuid.UUID) -> int:
        """Delete the connection for the unordered pair (a, b) in any status; returns rows removed."""
        user1_id, user2_id = Connection.ordered_pair(a, b)
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    delete(Connection).where(Connection.user1_id == user1_id, Connection.user2_id == user2_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error deleting connection pair: {e}",
                operation="delete_between",
                table="connections",
                details={"user_a": str(a), "user_b": str(b)},
            )
        if result.rowcount:
            logger.info("Connection removed", user_a=str(a), user_b=str(b))
        return result.rowcount
