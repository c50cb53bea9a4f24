import logging
from datetime import datetime, timezone
from os.path import dirname, join, realpath

import pytest
import yaml

from condql.architecture import ColumnMetadata
from condql.filter import FilterBuilder, FilterContext
from condql.onto import EscapeStrategy, ServiceType

logger = logging.getLogger(__name__)

# Friday
REFERENCE_INSTANT = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def current_path():
    return dirname(realpath(__file__))


@pytest.fixture(scope="function")
def config_path(current_path):
    return join(current_path, "config")


@pytest.fixture()
def reference_instant():
    return REFERENCE_INSTANT


@pytest.fixture()
def columns():
    tc = yaml.safe_load(
        """
        -   name: id
            data_type: uuid
            is_primary_key: true
        -   name: status
            data_type: character varying(32)
        -   name: region
            data_type: text
        -   name: amount
            data_type: numeric(10, 2)
        -   name: revenue
            data_type: numeric
        -   name: is_active
            data_type: boolean
        -   name: created_at
            data_type: timestamp with time zone
        -   name: metadata
            data_type: jsonb
        -   name: tags
            data_type: text[]
        -   name: secret
            data_type: text
            is_filterable: false
        """
    )
    return [ColumnMetadata.from_dict(item) for item in tc]


@pytest.fixture()
def context(columns, reference_instant):
    return FilterContext(columns=columns, reference_instant=reference_instant)


@pytest.fixture()
def raw_context(columns, reference_instant):
    return FilterContext(
        columns=columns,
        reference_instant=reference_instant,
        escape_strategy=EscapeStrategy.RAW_SQL,
    )


@pytest.fixture()
def explorer_context(columns, reference_instant):
    return FilterContext.for_service(
        ServiceType.DATA_EXPLORER, columns, reference_instant=reference_instant
    )


@pytest.fixture()
def builder(context):
    return FilterBuilder(context)


@pytest.fixture()
def raw_builder(raw_context):
    return FilterBuilder(raw_context)


@pytest.fixture()
def explorer_builder(explorer_context):
    return FilterBuilder(explorer_context)
