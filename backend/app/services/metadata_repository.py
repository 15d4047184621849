"""
DynamoDB metadata store for satellites, products, COGs and users
"""
import os
import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from functools import reduce
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from boto3.dynamodb.conditions import Attr
from pydantic import BaseModel

from app.models.cog import Cog
from app.models.product import Product
from app.models.query import StorePredicate
from app.models.satellite import Satellite
from app.models.user import User


logger = logging.getLogger(__name__)

# DynamoDB limits the IN operator to 100 operands
MAX_IN_OPERANDS = 100

_PRODUCT_NAMESPACE = uuid.UUID("6f1c2b7e-53a4-4d9a-9a3e-2f0c1e7b8d41")

ModelT = TypeVar("ModelT", bound=BaseModel)


class MetadataStoreError(Exception):
    """Metadata store error base class"""
    pass


class RecordNotFoundError(MetadataStoreError):
    """Record not found"""
    pass


class DuplicateRecordError(MetadataStoreError):
    """Record with the same identity already exists"""
    pass


class DatabaseConnectionError(MetadataStoreError):
    """Store unreachable or request rejected"""
    pass


def product_key(product_code: str, satellite_id: str, processing_level: str) -> str:
    """
    Deterministic Product store id for the (productCode, satelliteId, processingLevel) triple

    Two writers racing to create the same Product compute the same id, so a
    conditional put lets exactly one of them win.
    """
    return uuid.uuid5(_PRODUCT_NAMESPACE, f"{satellite_id}/{processing_level}/{product_code}").hex


def new_id() -> str:
    return uuid.uuid4().hex


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _store_errors(action: str) -> Callable:
    """Translate botocore failures raised by a store method into DatabaseConnectionError"""
    def decorator(func: Callable) -> Callable:
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except MetadataStoreError:
                raise
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                logger.error(f"Failed to {action}: {error_code} - {str(e)}")
                raise DatabaseConnectionError(f"Failed to {action}: {error_code}")
            except BotoCoreError as e:
                logger.error(f"Failed to {action}: {str(e)}")
                raise DatabaseConnectionError(f"Failed to {action}")
        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator


class MetadataStore:
    """
    Metadata store

    Document-collection access over four DynamoDB tables (Satellites, Products,
    Cogs, Users), each keyed by a string hash key ``id``. Items are stored in
    their camelCase wire form. Reference sets (``products``, ``cogs``) are
    DynamoDB string sets maintained with atomic ADD/DELETE updates.
    """

    def __init__(
        self,
        satellites_table: Optional[str] = None,
        products_table: Optional[str] = None,
        cogs_table: Optional[str] = None,
        users_table: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None
    ):
        """
        Initialize the store

        Args:
            satellites_table: Table name, default from SATELLITES_TABLE
            products_table: Table name, default from PRODUCTS_TABLE
            cogs_table: Table name, default from COGS_TABLE
            users_table: Table name, default from USERS_TABLE
            region: AWS region, default from AWS_REGION
            endpoint_url: DynamoDB endpoint (local development), default from DYNAMODB_ENDPOINT
        """
        self.satellites_table_name = satellites_table or os.getenv("SATELLITES_TABLE", "Satellites")
        self.products_table_name = products_table or os.getenv("PRODUCTS_TABLE", "Products")
        self.cogs_table_name = cogs_table or os.getenv("COGS_TABLE", "Cogs")
        self.users_table_name = users_table or os.getenv("USERS_TABLE", "Users")
        self.region = region or os.getenv("AWS_REGION", "us-west-2")
        self.endpoint_url = endpoint_url or os.getenv("DYNAMODB_ENDPOINT")

        try:
            dynamodb_config = {
                "region_name": self.region
            }
            if self.endpoint_url:
                dynamodb_config["endpoint_url"] = self.endpoint_url

            self.dynamodb = boto3.resource("dynamodb", **dynamodb_config)
            self.satellites = self.dynamodb.Table(self.satellites_table_name)
            self.products = self.dynamodb.Table(self.products_table_name)
            self.cogs = self.dynamodb.Table(self.cogs_table_name)
            self.users = self.dynamodb.Table(self.users_table_name)

            # Verify the tables exist
            for table in (self.satellites, self.products, self.cogs, self.users):
                table.load()
            logger.info(
                f"Connected to DynamoDB tables: {self.satellites_table_name}, "
                f"{self.products_table_name}, {self.cogs_table_name}, {self.users_table_name}"
            )

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"Failed to connect to DynamoDB: {error_code} - {str(e)}")
            raise DatabaseConnectionError(f"Cannot connect to metadata tables: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error connecting to DynamoDB: {str(e)}")
            raise DatabaseConnectionError(f"Unexpected error: {str(e)}")

    # ------------------------------------------------------------------
    # Satellites
    # ------------------------------------------------------------------

    @_store_errors("create satellite")
    def create_satellite(self, satellite: Satellite) -> Satellite:
        """
        Create a satellite

        Raises:
            DuplicateRecordError: a satellite with the same satelliteId exists
        """
        if self.find_satellite(satellite.satellite_id) is not None:
            raise DuplicateRecordError(f"Satellite already exists: {satellite.satellite_id}")

        satellite.id = satellite.id or new_id()
        now = _now_iso()
        item = self._model_to_item(satellite)
        item["createdAt"] = now
        item["updatedAt"] = now
        self.satellites.put_item(Item=item)

        logger.info(f"Created satellite: {satellite.satellite_id}")
        return self._item_to_model(item, Satellite)

    @_store_errors("get satellite")
    def get_satellite(self, record_id: str) -> Satellite:
        """
        Raises:
            RecordNotFoundError: no satellite with this store id
        """
        item = self.satellites.get_item(Key={"id": record_id}).get("Item")
        if not item:
            raise RecordNotFoundError(f"Satellite not found: {record_id}")
        return self._item_to_model(item, Satellite)

    @_store_errors("find satellite")
    def find_satellite(self, satellite_id: str) -> Optional[Satellite]:
        """Look up a satellite by its external satelliteId"""
        items = self._scan(self.satellites, StorePredicate(equals={"satelliteId": satellite_id}))
        if not items:
            logger.debug(f"No satellite found for satelliteId: {satellite_id}")
            return None
        return self._item_to_model(items[0], Satellite)

    @_store_errors("list satellites")
    def list_satellites(self) -> List[Satellite]:
        return [self._item_to_model(item, Satellite) for item in self._scan(self.satellites)]

    @_store_errors("update satellite")
    def update_satellite(self, record_id: str, fields: Dict[str, Any]) -> Satellite:
        """
        Set top-level attributes (camelCase names) on a satellite

        Raises:
            RecordNotFoundError: no satellite with this store id
        """
        return self._update_fields(self.satellites, record_id, fields, Satellite)

    @_store_errors("delete satellite")
    def delete_satellite(self, record_id: str) -> bool:
        self._delete_existing(self.satellites, record_id, "Satellite")
        logger.info(f"Deleted satellite: {record_id}")
        return True

    @_store_errors("update satellite references")
    def add_to_satellite_sets(
        self,
        record_id: str,
        products: Iterable[str] = (),
        cogs: Iterable[str] = ()
    ) -> None:
        """Atomically add ids to the satellite's products/cogs sets"""
        self._update_sets(self.satellites, record_id, "ADD", {"products": products, "cogs": cogs})

    @_store_errors("update satellite references")
    def remove_from_satellite_sets(
        self,
        record_id: str,
        products: Iterable[str] = (),
        cogs: Iterable[str] = ()
    ) -> None:
        """Atomically remove ids from the satellite's products/cogs sets"""
        self._update_sets(self.satellites, record_id, "DELETE", {"products": products, "cogs": cogs})

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @_store_errors("create product")
    def create_product(self, product: Product) -> Product:
        """
        Create a product with a conditional put on its deterministic id

        Raises:
            DuplicateRecordError: the (productId, satelliteId, processingLevel) triple exists
        """
        product.id = product_key(product.product_id, product.satellite_id, product.processing_level)
        now = _now_iso()
        item = self._model_to_item(product)
        item["createdAt"] = now
        item["updatedAt"] = now

        try:
            self.products.put_item(
                Item=item,
                ConditionExpression=Attr("id").not_exists()
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise DuplicateRecordError(
                    f"Product already exists: {product.product_id} "
                    f"({product.satellite_id}/{product.processing_level})"
                )
            raise

        logger.info(f"Created product: {product.product_id} ({product.satellite_id}/{product.processing_level})")
        return self._item_to_model(item, Product)

    @_store_errors("get product")
    def get_product(self, record_id: str) -> Product:
        """
        Raises:
            RecordNotFoundError: no product with this store id
        """
        item = self.products.get_item(Key={"id": record_id}).get("Item")
        if not item:
            raise RecordNotFoundError(f"Product not found: {record_id}")
        return self._item_to_model(item, Product)

    @_store_errors("find product")
    def find_product(self, product_code: str, satellite_id: str, processing_level: str) -> Optional[Product]:
        """Look up a product by its identity triple"""
        record_id = product_key(product_code, satellite_id, processing_level)
        item = self.products.get_item(Key={"id": record_id}).get("Item")
        return self._item_to_model(item, Product) if item else None

    @_store_errors("find products")
    def find_products(self, predicate: Optional[StorePredicate] = None) -> List[Product]:
        return [self._item_to_model(item, Product) for item in self._scan(self.products, predicate)]

    @_store_errors("update product")
    def update_product(self, record_id: str, fields: Dict[str, Any]) -> Product:
        """
        Set top-level attributes (camelCase names) on a product

        Raises:
            RecordNotFoundError: no product with this store id
        """
        return self._update_fields(self.products, record_id, fields, Product)

    @_store_errors("set product visibility")
    def set_visibility(self, record_ids: Iterable[str], is_visible: bool) -> int:
        """
        Set isVisible on every existing product in record_ids

        Returns:
            int: number of products whose flag actually changed
        """
        modified = 0
        for record_id in set(record_ids):
            try:
                self.products.update_item(
                    Key={"id": record_id},
                    UpdateExpression="SET isVisible = :visible, updatedAt = :updated_at",
                    ConditionExpression=Attr("id").exists() & Attr("isVisible").ne(is_visible),
                    ExpressionAttributeValues={
                        ":visible": is_visible,
                        ":updated_at": _now_iso()
                    }
                )
                modified += 1
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                    raise
        logger.info(f"Set isVisible={is_visible} on {modified} products")
        return modified

    @_store_errors("delete product")
    def delete_product(self, record_id: str) -> bool:
        self._delete_existing(self.products, record_id, "Product")
        logger.info(f"Deleted product: {record_id}")
        return True

    @_store_errors("update product references")
    def add_product_cogs(self, record_id: str, cog_ids: Iterable[str]) -> None:
        self._update_sets(self.products, record_id, "ADD", {"cogs": cog_ids})

    @_store_errors("update product references")
    def remove_product_cogs(self, record_id: str, cog_ids: Iterable[str]) -> None:
        self._update_sets(self.products, record_id, "DELETE", {"cogs": cog_ids})

    # ------------------------------------------------------------------
    # COGs
    # ------------------------------------------------------------------

    @_store_errors("create cog")
    def create_cog(self, cog: Cog) -> Cog:
        cog.id = cog.id or new_id()
        now = _now_iso()
        item = self._model_to_item(cog)
        item["createdAt"] = now
        item["updatedAt"] = now
        self.cogs.put_item(Item=item)

        logger.info(f"Created cog: {cog.id} ({cog.satellite_id}/{cog.processing_level}/{cog.product_code})")
        return self._item_to_model(item, Cog)

    @_store_errors("get cog")
    def get_cog(self, record_id: str) -> Cog:
        """
        Raises:
            RecordNotFoundError: no cog with this store id
        """
        item = self.cogs.get_item(Key={"id": record_id}).get("Item")
        if not item:
            raise RecordNotFoundError(f"Cog not found: {record_id}")
        return self._item_to_model(item, Cog)

    @_store_errors("find cogs")
    def find_cogs(self, predicate: Optional[StorePredicate] = None) -> List[Cog]:
        return [self._item_to_model(item, Cog) for item in self._scan(self.cogs, predicate)]

    @_store_errors("delete cogs")
    def delete_cogs(self, record_ids: Iterable[str]) -> int:
        """
        Delete many cogs in batches

        Returns:
            int: number of delete requests issued
        """
        record_ids = list(dict.fromkeys(record_ids))
        with self.cogs.batch_writer() as batch:
            for record_id in record_ids:
                batch.delete_item(Key={"id": record_id})
        logger.info(f"Deleted {len(record_ids)} cogs")
        return len(record_ids)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @_store_errors("create user")
    def create_user(self, user: User) -> User:
        """
        Raises:
            DuplicateRecordError: email already registered
        """
        if self.find_user_by_email(user.email) is not None:
            raise DuplicateRecordError(f"User already exists: {user.email}")
        user.id = user.id or new_id()
        item = self._model_to_item(user)
        item["createdAt"] = _now_iso()
        self.users.put_item(Item=item)
        logger.info(f"Registered user: {user.id}")
        return self._item_to_model(item, User)

    @_store_errors("find user")
    def find_user_by_email(self, email: str) -> Optional[User]:
        items = self._scan(self.users, StorePredicate(equals={"email": email}))
        return self._item_to_model(items[0], User) if items else None

    @_store_errors("get user")
    def get_user(self, record_id: str) -> User:
        item = self.users.get_item(Key={"id": record_id}).get("Item")
        if not item:
            raise RecordNotFoundError(f"User not found: {record_id}")
        return self._item_to_model(item, User)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _scan(self, table, predicate: Optional[StorePredicate] = None) -> List[Dict[str, Any]]:
        """
        Scan a table with a predicate, following pagination

        Membership sets above the IN operand limit are checked in memory.
        """
        if predicate is not None and predicate.matches_nothing:
            return []

        condition, leftover = self._to_condition(predicate)
        scan_params: Dict[str, Any] = {}
        if condition is not None:
            scan_params["FilterExpression"] = condition

        items: List[Dict[str, Any]] = []
        while True:
            response = table.scan(**scan_params)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_params["ExclusiveStartKey"] = last_key

        if leftover is not None:
            items = [item for item in items if leftover.matches(item)]
        return items

    def _to_condition(self, predicate: Optional[StorePredicate]):
        """
        Translate a StorePredicate into a boto3 condition

        Returns:
            Tuple of (condition or None, StorePredicate to apply in memory or None)
        """
        if predicate is None:
            return None, None

        conditions = []
        leftover = StorePredicate()

        for name, value in predicate.equals.items():
            conditions.append(Attr(name).eq(self._to_dynamodb(value)))

        for name, (lower, upper) in predicate.ranges.items():
            if lower is not None and upper is not None:
                conditions.append(Attr(name).between(lower, upper))
            elif lower is not None:
                conditions.append(Attr(name).gte(lower))
            elif upper is not None:
                conditions.append(Attr(name).lte(upper))
            else:
                conditions.append(Attr(name).exists())

        for name, values in predicate.members.items():
            if len(values) <= MAX_IN_OPERANDS:
                conditions.append(Attr(name).is_in(list(values)))
            else:
                leftover.members[name] = values

        condition = reduce(lambda a, b: a & b, conditions) if conditions else None
        return condition, (leftover if leftover.members else None)

    def _update_sets(self, table, record_id: str, action: str, sets: Dict[str, Iterable[str]]) -> None:
        """Apply an ADD or DELETE to string-set attributes"""
        clauses = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for name, ids in sets.items():
            ids = {i for i in ids if i}
            if not ids:
                continue
            clauses.append(f"#{name} :{name}")
            names[f"#{name}"] = name
            values[f":{name}"] = ids
        if not clauses:
            return

        # update_item upserts, so guard against creating a bare record
        try:
            table.update_item(
                Key={"id": record_id},
                UpdateExpression=f"{action} {', '.join(clauses)}",
                ConditionExpression=Attr("id").exists(),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise RecordNotFoundError(f"Record not found in {table.table_name}: {record_id}")
            raise
        logger.debug(f"{action} {list(values)} on {table.table_name}/{record_id}")

    def _update_fields(self, table, record_id: str, fields: Dict[str, Any], model: Type[ModelT]) -> ModelT:
        fields = dict(fields)
        fields["updatedAt"] = _now_iso()

        names = {f"#f{i}": name for i, name in enumerate(fields)}
        values = {f":val{i}": self._to_dynamodb(value) for i, value in enumerate(fields.values())}
        update_expression = "SET " + ", ".join(f"#f{i} = :val{i}" for i in range(len(fields)))

        try:
            response = table.update_item(
                Key={"id": record_id},
                UpdateExpression=update_expression,
                ConditionExpression=Attr("id").exists(),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW"
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise RecordNotFoundError(f"{model.__name__} not found: {record_id}")
            raise

        return self._item_to_model(response["Attributes"], model)

    def _delete_existing(self, table, record_id: str, kind: str) -> None:
        try:
            table.delete_item(
                Key={"id": record_id},
                ConditionExpression=Attr("id").exists()
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise RecordNotFoundError(f"{kind} not found: {record_id}")
            raise

    def _model_to_item(self, model: BaseModel) -> Dict[str, Any]:
        """
        Convert a model to a DynamoDB item

        Empty reference lists become absent attributes, non-empty ones string sets.
        """
        item = model.model_dump(by_alias=True, exclude_none=True, mode="json")
        for name in ("products", "cogs"):
            if name in item and isinstance(item[name], list):
                if item[name]:
                    item[name] = set(item[name])
                else:
                    del item[name]
        return self._to_dynamodb(item)

    def _item_to_model(self, item: Dict[str, Any], model: Type[ModelT]) -> ModelT:
        item = self._convert_decimals(item)
        for name in ("products", "cogs"):
            if isinstance(item.get(name), set):
                item[name] = sorted(item[name])
        return model.model_validate(item)

    def _to_dynamodb(self, obj: Any) -> Any:
        """
        Recursively convert floats to Decimal for DynamoDB

        NaN and infinities have no DynamoDB number form and are stored as null.

        Args:
            obj: Object to convert

        Returns:
            Converted object
        """
        if isinstance(obj, bool):
            return obj
        if isinstance(obj, float):
            if not math.isfinite(obj):
                return None
            return Decimal(str(obj))
        if isinstance(obj, list):
            return [self._to_dynamodb(item) for item in obj]
        if isinstance(obj, dict):
            return {key: self._to_dynamodb(value) for key, value in obj.items()}
        return obj

    def _convert_decimals(self, obj: Any) -> Any:
        """
        Recursively convert DynamoDB Decimal values to native Python numbers

        Args:
            obj: Object to convert

        Returns:
            Converted object
        """
        if isinstance(obj, list):
            return [self._convert_decimals(item) for item in obj]
        elif isinstance(obj, dict):
            return {key: self._convert_decimals(value) for key, value in obj.items()}
        elif isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            else:
                return float(obj)
        else:
            return obj
