"""Pytest fixtures for test suite."""

import pytest
from pathlib import Path

from specforge.core.config import Settings
from specforge.rules import MetadataCatalog, RuleCompiler
from specforge.schema import EntityIR, SchemaCompiler


# =============================================================================
# Schema Fixtures
# =============================================================================


SCHEMA_SQL = """
-- appget domain
CREATE TABLE employees (
    name VARCHAR(100) NOT NULL,
    age INT NOT NULL,
    role_id VARCHAR(50),
    is_admin BOOLEAN NOT NULL,
    PRIMARY KEY (name)
);

CREATE TABLE salaries (
    employee_id VARCHAR(100) NOT NULL,
    amount DECIMAL(15, 2) NOT NULL,
    years_of_service INT,
    FOREIGN KEY (employee_id) REFERENCES employees(name)
);

-- hr domain
CREATE TABLE departments (
    id VARCHAR(50) PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    budget NUMERIC(12,2)
);
"""

VIEWS_SQL = """
-- appget domain: Employee with Salary details
CREATE VIEW employee_salary_view AS
SELECT
    e.name AS employee_name,
    e.age AS employee_age,
    s.amount AS salary_amount
FROM employees e
JOIN salaries s ON e.name = s.employee_id;

-- hr domain: Department with budget summary
CREATE VIEW department_budget_view AS
SELECT
    d.id AS department_id,
    SUM(d.budget) AS total_budget,
    COUNT(*) AS department_count
FROM departments d
GROUP BY d.id;
"""

METADATA_YAML = """
metadata:
  sso:
    enabled: true
    description: Single sign-on session
    fields:
      - name: authenticated
        type: boolean
      - name: sessionId
        type: String
  roles:
    enabled: true
    fields:
      - name: roleLevel
        type: int
  oauth:
    enabled: false
    fields:
      - name: accessToken
        type: String
"""

EMPLOYEE_FEATURE = """
@domain:appget
Feature: Employee rules

  @target:employees @rule:AgeCheck
  Scenario: Adults are classified
    When age is at least 18
    Then status is "ADULT"
    But otherwise status is "MINOR"

  @target:employees @rule:ManagerAccess @blocking
  Scenario: Managers need an SSO session
    Given sso context requires:
      | field         | operator | value |
      | authenticated | ==       | true  |
    When role_id equals "Manager"
    Then status is "APPROVED"
    But otherwise status is "DENIED"

  @target:employees @rule:AdminOrOwner
  Scenario: Admins or owners
    When any condition is met:
      | field    | operator | value   |
      | is_admin | ==       | true    |
      | role_id  | ==       | "Owner" |
    Then status is "PRIVILEGED"
    But otherwise status is "REGULAR"
"""


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, isolated from any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def schema_sql() -> str:
    return SCHEMA_SQL


@pytest.fixture
def views_sql() -> str:
    return VIEWS_SQL


@pytest.fixture
def entity_ir(settings: Settings) -> EntityIR:
    """Entity IR compiled from the sample schema and views."""
    return SchemaCompiler(settings).compile(SCHEMA_SQL, VIEWS_SQL)


@pytest.fixture
def catalog() -> MetadataCatalog:
    return MetadataCatalog.from_yaml(METADATA_YAML)


@pytest.fixture
def employee_feature() -> str:
    return EMPLOYEE_FEATURE


@pytest.fixture
def rule_compiler(catalog: MetadataCatalog, entity_ir: EntityIR, settings: Settings) -> RuleCompiler:
    """Rule compiler validating against the sample catalog and entities."""
    return RuleCompiler(catalog, entity_ir, settings)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A directory with schema, views, metadata and one feature file."""
    (tmp_path / "schema.sql").write_text(SCHEMA_SQL)
    (tmp_path / "views.sql").write_text(VIEWS_SQL)
    (tmp_path / "metadata.yaml").write_text(METADATA_YAML)
    features = tmp_path / "features"
    features.mkdir()
    (features / "employees.feature").write_text(EMPLOYEE_FEATURE)
    return tmp_path
