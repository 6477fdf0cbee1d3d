import sqlite3
import logging
import threading
from contextlib import contextmanager
from typing import Generator, Dict, Any, Optional
import json

from ..config.settings import settings

logger = logging.getLogger(__name__)

class DatabaseManager:
    """SQLite ledger for sandbox orders and settlement transactions"""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        # A single shared connection keeps ":memory:" databases alive between calls
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database with required tables"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS orders (
                        order_id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        total REAL NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        payment_status TEXT NOT NULL DEFAULT 'pending',
                        payment_method TEXT,
                        payment_details TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS transactions (
                        transaction_id TEXT PRIMARY KEY,
                        method TEXT NOT NULL,
                        amount REAL NOT NULL,
                        currency TEXT NOT NULL,
                        status TEXT NOT NULL,
                        reference TEXT,
                        idempotency_key TEXT,
                        response_data TEXT NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_idempotency_key
                    ON transactions(method, idempotency_key)
                """)
                conn.commit()
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Serialize access to the shared connection"""
        with self._lock:
            yield self._conn

    def close(self) -> None:
        self._conn.close()

    # Orders
    def save_order(self, order_data: Dict[str, Any]) -> bool:
        """Create an order, or leave an existing one untouched"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT OR IGNORE INTO orders (order_id, user_id, total, status, payment_status)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    order_data['order_id'],
                    order_data['user_id'],
                    order_data['total'],
                    order_data.get('status', 'pending'),
                    order_data.get('payment_status', 'pending')
                ))
                conn.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to save order: {e}")
            return False

    def get_order(self, order_id: str) -> Dict[str, Any]:
        """Retrieve an order by ID"""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM orders WHERE order_id = ?",
                    (order_id,)
                ).fetchone()
                if row:
                    return {
                        'order_id': row['order_id'],
                        'user_id': row['user_id'],
                        'total': row['total'],
                        'status': row['status'],
                        'payment_status': row['payment_status'],
                        'payment_method': row['payment_method'],
                        'payment_details': json.loads(row['payment_details']) if row['payment_details'] else None,
                        'created_at': row['created_at'],
                        'updated_at': row['updated_at']
                    }
                return {}
        except Exception as e:
            logger.error(f"Failed to retrieve order: {e}")
            return {}

    def update_order_payment(self, order_id: str, payment_method: str, payment_status: str,
                             payment_details: Dict[str, Any], status: Optional[str] = None) -> bool:
        """Record payment information on an order"""
        try:
            with self._get_connection() as conn:
                if status:
                    conn.execute("""
                        UPDATE orders
                        SET payment_method = ?, payment_status = ?, payment_details = ?, status = ?,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE order_id = ?
                    """, (payment_method, payment_status, json.dumps(payment_details), status, order_id))
                else:
                    conn.execute("""
                        UPDATE orders
                        SET payment_method = ?, payment_status = ?, payment_details = ?,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE order_id = ?
                    """, (payment_method, payment_status, json.dumps(payment_details), order_id))
                conn.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to update order payment: {e}")
            return False

    # Transactions
    def save_transaction(self, transaction_data: Dict[str, Any]) -> bool:
        """Save a settlement transaction"""
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO transactions
                    (transaction_id, method, amount, currency, status, reference, idempotency_key, response_data)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    transaction_data['transaction_id'],
                    transaction_data['method'],
                    transaction_data['amount'],
                    transaction_data['currency'],
                    transaction_data['status'],
                    transaction_data.get('reference'),
                    transaction_data.get('idempotency_key'),
                    json.dumps(transaction_data['response_data'], default=str)
                ))
                conn.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to save transaction: {e}")
            return False

    def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        """Retrieve a transaction by ID"""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM transactions WHERE transaction_id = ?",
                    (transaction_id,)
                ).fetchone()
                return self._transaction_from_row(row) if row else {}
        except Exception as e:
            logger.error(f"Failed to retrieve transaction: {e}")
            return {}

    def get_transaction_by_idempotency_key(self, method: str, idempotency_key: str) -> Dict[str, Any]:
        """Find the transaction an earlier request with the same key created"""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM transactions WHERE method = ? AND idempotency_key = ?",
                    (method, idempotency_key)
                ).fetchone()
                return self._transaction_from_row(row) if row else {}
        except Exception as e:
            logger.error(f"Failed to retrieve transaction by idempotency key: {e}")
            return {}

    @staticmethod
    def _transaction_from_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'transaction_id': row['transaction_id'],
            'method': row['method'],
            'amount': row['amount'],
            'currency': row['currency'],
            'status': row['status'],
            'reference': row['reference'],
            'idempotency_key': row['idempotency_key'],
            'response_data': json.loads(row['response_data']),
            'created_at': row['created_at']
        }

# Global instance
db_instance = DatabaseManager(settings.DATABASE_URL)
