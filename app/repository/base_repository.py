"""
엔티티 공통 데이터 접근 리포지토리

SQLAlchemy Core SELECT 를 사용하여 CRUD, 소프트 삭제, 목록 조회를 제공합니다.
- 모든 조회는 is_deleted 가 참인 행을 제외 (호출자가 is_deleted 로 직접 필터링하는 경우 제외)
- 조회 결과는 모델 인스턴스가 아니라 dict 로 반환
- 세션을 전달하지 않으면 작업마다 세션을 열고 닫는다
- 저장소 예외는 잡지 않는다 (session_scope 가 StorageError 로 바꿔 올린다)
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar, Union

from sqlalchemy import String, and_, cast, func, or_, select, true
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import ColumnElement, Select

from app.core.config import settings
from app.core.constants import (
    QueryConstants,
    ReadConcernIsolation,
    REPLICA_READ_PREFERENCES,
    RepositoryConstants,
)
from app.core.db import session_scope
from app.core.storage_errors import StorageError, StorageErrorKind
from app.schemas.query import ExecutionOptions, ListParams, ListResult, PipelineStage
from app.utils.logging import get_logger
from app.utils.object_ref import ObjectRef
from app.utils.query_params import (
    Condition,
    DateRange,
    FilterOperator,
    FilterPredicate,
    build_condition,
    decode_filter,
    decode_sort,
    ensure_filterable,
    pagination_request,
    pagination_result,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")

Filters = Union[FilterPredicate, Mapping[str, Any]]
Projection = Union[Mapping[str, Any], Sequence[str]]

# 집계 경로 결과에만 존재하는 보조 컬럼
_TOTAL_LABEL = "_total_items"
_POSITION_LABEL = "_row_position"


def _bind_value(value: Any) -> Any:
    if isinstance(value, ObjectRef):
        return str(value)
    return value


class BaseRepository(Generic[ModelT]):
    """
    엔티티 공통 리포지토리 클래스.
    - `model`: SQLAlchemy 선언적 모델
    - `session_factory`: 기본 세션 팩토리
    - `replica_session_factory`: 읽기 전용 복제본 세션 팩토리 (옵션)
    """

    # 목록 조회 필터 허용 필드 (ListParams.filterable_fields 가 None 일 때)
    filterable_fields: Sequence[str] = ()

    # 목록 조회 결과에서 항상 숨기는 엔티티별 필드
    hidden_fields: Sequence[str] = ()

    default_sort: str = settings.query.DEFAULT_SORT

    def __init__(
        self,
        model: type,
        session_factory: sessionmaker,
        replica_session_factory: Optional[sessionmaker] = None,
    ):
        self.model = model
        self.table = model.__table__
        self.session_factory = session_factory
        self.replica_session_factory = replica_session_factory
        self.primary_key = list(self.table.primary_key.columns)[0].key

    # --- 조건 / 컬럼 구성 ---

    def _column(self, columns, name: str) -> ColumnElement:
        if name not in columns:
            raise StorageError(
                StorageErrorKind.STRICT_SCHEMA,
                f"Field '{name}' is not defined in schema",
                path=name,
            )
        return columns[name]

    def _compile_condition(self, columns, condition: Condition) -> ColumnElement:
        column = self._column(columns, condition.field)
        operator = condition.operator
        value = condition.value

        if isinstance(value, DateRange):
            return and_(column >= value.start, column < value.end)
        if operator is FilterOperator.IN:
            return column.in_([_bind_value(item) for item in value])
        if operator is FilterOperator.LIKE:
            # SQLite REGEXP 는 flags 인자를 무시하므로 인라인 (?i) 로 대소문자를 무시한다
            if not isinstance(column.type, String):
                column = cast(column, String)
            return column.regexp_match(f"(?i){value}")

        value = _bind_value(value)
        if operator is FilterOperator.EQ:
            return column.is_(None) if value is None else column == value
        if operator is FilterOperator.NE:
            # 값이 없는(NULL) 행도 '같지 않음' 으로 본다
            return column.isnot(None) if value is None else or_(column != value, column.is_(None))
        if operator is FilterOperator.GT:
            return column > value
        if operator is FilterOperator.GTE:
            return column >= value
        if operator is FilterOperator.LT:
            return column < value
        if operator is FilterOperator.LTE:
            return column <= value
        raise StorageError(StorageErrorKind.ORM, f"Unsupported filter operator: {operator.value}")

    def _where(self, predicate: FilterPredicate, columns, hide_deleted: bool = True) -> List[ColumnElement]:
        clauses = [self._compile_condition(columns, condition) for condition in predicate.all_of]
        if predicate.any_of:
            clauses.append(or_(*(self._compile_condition(columns, condition) for condition in predicate.any_of)))
        if hide_deleted:
            clauses.append(columns[RepositoryConstants.SOFT_DELETE_FIELD].isnot(True))
        return clauses

    def _as_predicate(self, filters: Optional[Filters]) -> FilterPredicate:
        if filters is None:
            return FilterPredicate()
        if isinstance(filters, FilterPredicate):
            return filters
        return FilterPredicate(all_of=tuple(build_condition(key, value) for key, value in filters.items()))

    def _hides_deleted(self, predicate: FilterPredicate) -> bool:
        return RepositoryConstants.SOFT_DELETE_FIELD not in predicate.fields

    def _order_by(
        self,
        sort: Optional[Mapping[str, int]],
        columns,
        collation: Optional[str] = None,
    ) -> List[ColumnElement]:
        """정렬 절을 만들고, 기본 키를 마지막 오름차순 기준으로 덧붙입니다."""
        sort = sort or {}
        clauses = []
        for field, direction in sort.items():
            column = self._column(columns, field)
            if collation and isinstance(column.type, String):
                column = column.collate(collation)
            clauses.append(column.asc() if direction == QueryConstants.ASCENDING else column.desc())
        if self.primary_key not in sort:
            clauses.append(columns[self.primary_key].asc())
        return clauses

    def _projected_columns(self, projection: Optional[Projection]) -> List[ColumnElement]:
        """
        투영 규칙
        - None: 인증 정보 필드를 제외한 전체 컬럼
        - 참 값이 하나라도 있는 매핑: 포함 투영 (기본 키는 0 으로 명시하지 않는 한 포함)
        - 그 외 매핑: 거짓 값 키를 제외
        - 문자열 시퀀스: 포함 투영
        """
        columns = self.table.c
        if projection is None:
            return [column for column in columns if column.key not in RepositoryConstants.CREDENTIAL_FIELDS]

        if isinstance(projection, Mapping):
            if not any(projection.values()):
                return [column for column in columns if column.key not in projection]
            names = [name for name, flag in projection.items() if flag]
            keep_primary_key = projection.get(self.primary_key, 1)
        else:
            names = list(projection)
            keep_primary_key = True

        if keep_primary_key and self.primary_key not in names:
            names.insert(0, self.primary_key)
        return [self._column(columns, name) for name in names]

    def _listed_columns(self, excluded: Sequence[str]) -> List[ColumnElement]:
        return [column for column in self.table.c if column.key not in excluded]

    def _writable_values(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = {}
        for key, value in data.items():
            if key not in self.table.c or key == self.model.__mapper__.version_id_col.key:
                raise StorageError(
                    StorageErrorKind.STRICT_SCHEMA,
                    f"Field '{key}' is not defined in schema",
                    path=key,
                )
            values[key] = _bind_value(value)
        return values

    def _to_dict(self, instance: Any, columns: Optional[List[ColumnElement]] = None) -> Dict[str, Any]:
        columns = columns if columns is not None else self._projected_columns(None)
        return {column.key: getattr(instance, column.key) for column in columns}

    def _object_ref(self, entity_id: Any) -> ObjectRef:
        if not ObjectRef.is_valid(entity_id):
            raise StorageError(
                StorageErrorKind.CAST,
                f"Invalid {self.primary_key} format",
                path=self.primary_key,
                value=entity_id,
                target_type="ObjectId",
            )
        return ObjectRef(entity_id)

    # --- 실행 옵션 ---

    def _read_session_factory(self, options: ExecutionOptions) -> sessionmaker:
        if options.read_preference in REPLICA_READ_PREFERENCES and self.replica_session_factory is not None:
            return self.replica_session_factory
        return self.session_factory

    def _read_scope(self, options: ExecutionOptions):
        isolation_level = ReadConcernIsolation.LEVELS.get(options.read_concern) if options.read_concern else None
        return session_scope(
            self._read_session_factory(options),
            options.session,
            isolation_level=isolation_level,
        )

    def _with_hint(self, stmt: Select, options: ExecutionOptions) -> Select:
        # PostgreSQL 은 인덱스 힌트를 지원하지 않으므로 무시된다
        if options.hint:
            stmt = stmt.with_hint(self.table, f"INDEXED BY {options.hint}", "sqlite")
            stmt = stmt.with_hint(self.table, f"USE INDEX ({options.hint})", "mysql")
        return stmt

    def _with_execution_options(self, stmt: Select, options: ExecutionOptions) -> Select:
        execution = {}
        if options.allow_disk_use:
            execution["stream_results"] = True
        if options.max_time_ms:
            execution["max_time_ms"] = options.max_time_ms
        return stmt.execution_options(**execution) if execution else stmt

    def _fetch_rows(self, stmt: Select, options: ExecutionOptions) -> List[Dict[str, Any]]:
        with self._read_scope(options) as db:
            return [dict(row._mapping) for row in db.execute(stmt)]

    def _fetch_count(self, stmt: Select, options: ExecutionOptions) -> int:
        with self._read_scope(options) as db:
            return db.execute(stmt).scalar_one()

    # --- CRUD ---

    def create(self, data: Mapping[str, Any], session: Optional[Session] = None) -> Dict[str, Any]:
        """새 행을 추가하고 저장된 값을 반환합니다."""
        values = self._writable_values(data)
        with session_scope(self.session_factory, session, commit=True) as db:
            instance = self.model(**values)
            db.add(instance)
            db.flush()
            logger.log_entity_change(self.model.__name__, "created", instance.id)
            return self._to_dict(instance)

    def find_all(
        self,
        filters: Optional[Filters] = None,
        projection: Optional[Projection] = None,
        session: Optional[Session] = None,
    ) -> List[Dict[str, Any]]:
        return self.find(filters, projection, session=session)

    def find(
        self,
        filters: Optional[Filters] = None,
        projection: Optional[Projection] = None,
        sort: Optional[Mapping[str, int]] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> List[Dict[str, Any]]:
        """
        조건에 맞는 행 목록을 조회합니다.
        - `filters`: {필드 또는 필드__연산자: 값} 매핑, 또는 FilterPredicate
        - `sort`: {필드: 1 | -1}
        """
        predicate = self._as_predicate(filters)
        columns = self.table.c
        stmt = (
            select(*self._projected_columns(projection))
            .where(*self._where(predicate, columns, self._hides_deleted(predicate)))
            .order_by(*self._order_by(sort, columns))
        )
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        with session_scope(self.session_factory, session) as db:
            return [dict(row._mapping) for row in db.execute(stmt)]

    def find_one(
        self,
        filters: Filters,
        projection: Optional[Projection] = None,
        session: Optional[Session] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = self.find(filters, projection, limit=1, session=session)
        return rows[0] if rows else None

    def find_by_id(
        self,
        entity_id: str,
        projection: Optional[Projection] = None,
        session: Optional[Session] = None,
        include_deleted: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        ID 로 단건 조회합니다.
        형식이 잘못된 ID 는 StorageError(CAST, target_type="ObjectId") 를 발생시킵니다.
        """
        ref = self._object_ref(entity_id)
        predicate = FilterPredicate(all_of=(Condition(self.primary_key, FilterOperator.EQ, ref),))
        columns = self.table.c
        stmt = select(*self._projected_columns(projection)).where(
            *self._where(predicate, columns, hide_deleted=not include_deleted)
        )
        with session_scope(self.session_factory, session) as db:
            row = db.execute(stmt).first()
            return dict(row._mapping) if row is not None else None

    def find_with_credentials(self, entity_id: str, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
        """인증 정보 필드까지 포함한 전체 행을 조회합니다."""
        return self.find_by_id(entity_id, projection={}, session=session)

    def find_last(self, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
        """가장 최근에 생성된 행을 조회합니다."""
        rows = self.find(
            sort={RepositoryConstants.CREATED_AT_FIELD: QueryConstants.DESCENDING},
            limit=1,
            session=session,
        )
        return rows[0] if rows else None

    def update(
        self,
        entity_id: str,
        data: Mapping[str, Any],
        session: Optional[Session] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        지정한 필드를 변경하고 변경 후 값을 반환합니다. 행이 없으면 None.
        수정된 행은 항상 is_deleted=False 가 되므로, 소프트 삭제된 행을 수정하면 복구된다.
        """
        ref = self._object_ref(entity_id)
        values = self._writable_values(data)
        with session_scope(self.session_factory, session, commit=True) as db:
            instance = db.get(self.model, str(ref))
            if instance is None:
                return None
            if getattr(instance, RepositoryConstants.SOFT_DELETE_FIELD):
                logger.warning(
                    f"소프트 삭제된 {self.model.__name__} 수정으로 복구됨: {ref}",
                    extra={"entity": self.model.__name__, "entity_id": str(ref)},
                )
            for key, value in values.items():
                setattr(instance, key, value)
            setattr(instance, RepositoryConstants.SOFT_DELETE_FIELD, False)
            db.flush()
            return self._to_dict(instance)

    def delete(self, entity_id: str, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
        """소프트 삭제 후 변경된 값을 반환합니다. 행이 없으면 None."""
        ref = self._object_ref(entity_id)
        with session_scope(self.session_factory, session, commit=True) as db:
            instance = db.get(self.model, str(ref))
            if instance is None:
                return None
            setattr(instance, RepositoryConstants.SOFT_DELETE_FIELD, True)
            db.flush()
            logger.log_entity_change(self.model.__name__, "deleted", str(ref))
            return self._to_dict(instance)

    def aggregate(
        self,
        pipeline: Sequence[PipelineStage],
        options: Optional[ExecutionOptions] = None,
    ) -> List[Dict[str, Any]]:
        """엔티티 테이블 SELECT 에 단계를 차례로 적용하여 실행합니다."""
        options = options or ExecutionOptions()
        stmt = self._with_hint(select(self.table), options)
        for stage in pipeline:
            stmt = stage(stmt)
        return self._fetch_rows(self._with_execution_options(stmt, options), options)

    # --- 목록 조회 ---

    def _list_by_find(
        self,
        predicate: FilterPredicate,
        sort: Optional[Dict[str, int]],
        skip: int,
        limit: int,
        excluded: Sequence[str],
        options: ExecutionOptions,
    ) -> tuple:
        columns = self.table.c
        where = self._where(predicate, columns)
        data_stmt = (
            select(*self._listed_columns(excluded))
            .where(*where)
            .order_by(*self._order_by(sort, columns, options.collation))
            .offset(skip)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(self.table).where(*where)
        data_stmt = self._with_execution_options(self._with_hint(data_stmt, options), options)
        count_stmt = self._with_execution_options(self._with_hint(count_stmt, options), options)

        if options.session is not None:
            # 하나의 세션은 동시에 사용할 수 없으므로 순차 실행
            return self._fetch_rows(data_stmt, options), self._fetch_count(count_stmt, options)

        with ThreadPoolExecutor(max_workers=2) as executor:
            data_future = executor.submit(self._fetch_rows, data_stmt, options)
            count_future = executor.submit(self._fetch_count, count_stmt, options)
            return data_future.result(), count_future.result()

    def _list_by_aggregation(
        self,
        predicate: FilterPredicate,
        sort: Optional[Dict[str, int]],
        skip: int,
        limit: int,
        excluded: Sequence[str],
        params: ListParams,
    ) -> tuple:
        """
        단계 적용 → 기본 조건 매칭 → 건수/페이지 fan-out 을 하나의 구문으로 실행합니다.

            WITH filtered AS (SELECT * FROM (<stages>) AS staged WHERE <predicate>),
                 total AS (SELECT count(*) FROM filtered),
                 page AS (SELECT ... FROM filtered ORDER BY ... LIMIT ... OFFSET ...)
            SELECT total.*, page.* FROM total LEFT OUTER JOIN page ON true

        페이지가 비어도 건수 행 하나는 반환된다.
        """
        options = params.options
        staged_stmt = self._with_hint(select(self.table), options)
        for stage in params.aggregation_pipeline:
            staged_stmt = stage(staged_stmt)
        staged = staged_stmt.subquery("staged")

        filtered = select(staged).where(*self._where(predicate, staged.c)).cte("filtered")
        total = select(func.count().label(_TOTAL_LABEL)).select_from(filtered).cte("total")

        order = self._order_by(sort, filtered.c, options.collation)
        page_stmt = select(filtered).order_by(*order).offset(skip).limit(limit)
        if params.project_stage is not None:
            page_stmt = params.project_stage(page_stmt)
        page = page_stmt.add_columns(func.row_number().over(order_by=order).label(_POSITION_LABEL)).cte("page")

        stmt = (
            select(total.c[_TOTAL_LABEL], page)
            .select_from(total.outerjoin(page, true()))
            .order_by(page.c[_POSITION_LABEL])
        )
        rows = self._fetch_rows(self._with_execution_options(stmt, options), options)

        total_items = rows[0][_TOTAL_LABEL] if rows else 0
        hidden = set(excluded) | {_TOTAL_LABEL, _POSITION_LABEL}
        data = [
            {key: value for key, value in row.items() if key not in hidden}
            for row in rows
            if row[_POSITION_LABEL] is not None
        ]
        return data, total_items

    def list(self, params: ListParams) -> ListResult:
        """
        필터/정렬/페이지네이션 문자열로 목록과 페이지네이션 정보를 조회합니다.

        - 필터는 허용 필드 검사 후 is_deleted IS NOT TRUE 와 결합된다
        - `use_aggregation` 이 False 면 데이터/건수 쿼리를 동시에 실행
        - True 면 단계 적용 후 단일 구문 fan-out 으로 실행
        - 두 경로 모두 기본 키를 마지막 정렬 기준으로 사용하여 같은 순서를 보장
        """
        predicate = decode_filter(params.filter, log=logger)
        allowed_fields = self.filterable_fields if params.filterable_fields is None else params.filterable_fields
        ensure_filterable(predicate, allowed_fields)
        sort = decode_sort(self.default_sort if params.sort is None else params.sort)
        request = pagination_request(params.page, params.length)

        excluded = tuple(dict.fromkeys((
            *RepositoryConstants.DEFAULT_EXCLUDE_FIELDS,
            *self.hidden_fields,
            *params.exclude_fields,
        )))

        if params.use_aggregation:
            data, total_items = self._list_by_aggregation(
                predicate, sort, request.skip, request.limit, excluded, params
            )
        else:
            data, total_items = self._list_by_find(
                predicate, sort, request.skip, request.limit, excluded, params.options
            )

        logger.debug(
            f"{self.model.__name__} 목록 조회: {len(data)}/{total_items}건",
            extra={"details": {"aggregation": params.use_aggregation, "skip": request.skip, "limit": request.limit}},
        )
        return ListResult(data=data, pagination=pagination_result(total_items, request))
