"""
GraphQL documents sent to `beans graphql`.

Single-bean operations share the BeanFields fragment. Batch mutations are
built at call time with one aliased field per item (c0, c1, ... for
creates; u0, ... for updates; d0, ... for deletes) so a single backend call
covers the whole batch and per-item errors can be traced back by alias.
"""

from typing import Any, Dict, List, Optional, Tuple


BEAN_FIELDS = """
  fragment BeanFields on Bean {
    id
    slug
    path
    title
    body
    status
    type
    priority
    tags
    createdAt
    updatedAt
    etag
    parentId
    blockingIds
    blockedByIds
  }
"""

LIST_BEANS_QUERY = BEAN_FIELDS + """
  query ListBeans($filter: BeanFilter) {
    beans(filter: $filter) {
      ...BeanFields
    }
  }
"""

SHOW_BEAN_QUERY = BEAN_FIELDS + """
  query ShowBean($id: ID!) {
    bean(id: $id) {
      ...BeanFields
    }
  }
"""

CREATE_BEAN_MUTATION = BEAN_FIELDS + """
  mutation CreateBean($input: CreateBeanInput!) {
    createBean(input: $input) {
      ...BeanFields
    }
  }
"""

UPDATE_BEAN_MUTATION = BEAN_FIELDS + """
  mutation UpdateBean($id: ID!, $input: UpdateBeanInput!) {
    updateBean(id: $id, input: $input) {
      ...BeanFields
    }
  }
"""

DELETE_BEAN_MUTATION = """
  mutation DeleteBean($id: ID!) {
    deleteBean(id: $id)
  }
"""


def build_batch_create(inputs: List[Tuple[str, Dict[str, Any]]]) -> Tuple[str, Dict[str, Any]]:
    """
    Build an aliased create mutation.

    Args:
        inputs: (alias, CreateBeanInput) pairs

    Returns:
        (document, variables)
    """
    variables: Dict[str, Any] = {}
    fields = []
    for alias, data in inputs:
        variables[alias] = data
        fields.append(f"{alias}: createBean(input: ${alias}) {{ ...BeanFields }}")

    defs = ", ".join(f"${alias}: CreateBeanInput!" for alias, _ in inputs)
    document = BEAN_FIELDS + f"""
  mutation BatchCreate({defs}) {{
    {_join(fields)}
  }}
"""
    return document, variables


def build_batch_update(inputs: List[Tuple[str, str, Dict[str, Any]]]) -> Tuple[str, Dict[str, Any]]:
    """
    Build an aliased update mutation.

    Args:
        inputs: (alias, bean id, UpdateBeanInput) triples

    Returns:
        (document, variables)
    """
    variables: Dict[str, Any] = {}
    fields = []
    defs = []
    for alias, bean_id, data in inputs:
        id_var = f"{alias}_id"
        variables[id_var] = bean_id
        variables[alias] = data
        defs.append(f"${id_var}: ID!, ${alias}: UpdateBeanInput!")
        fields.append(f"{alias}: updateBean(id: ${id_var}, input: ${alias}) {{ ...BeanFields }}")

    document = BEAN_FIELDS + f"""
  mutation BatchUpdate({", ".join(defs)}) {{
    {_join(fields)}
  }}
"""
    return document, variables


def build_batch_delete(inputs: List[Tuple[str, str]]) -> Tuple[str, Dict[str, Any]]:
    """
    Build an aliased delete mutation.

    Args:
        inputs: (alias, bean id) pairs

    Returns:
        (document, variables)
    """
    variables: Dict[str, Any] = {}
    fields = []
    defs = []
    for alias, bean_id in inputs:
        id_var = f"{alias}_id"
        variables[id_var] = bean_id
        defs.append(f"${id_var}: ID!")
        fields.append(f"{alias}: deleteBean(id: ${id_var})")

    document = f"""
  mutation BatchDelete({", ".join(defs)}) {{
    {_join(fields)}
  }}
"""
    return document, variables


def error_for_alias(errors: List[Dict[str, Any]], alias: str) -> Optional[Dict[str, Any]]:
    """First backend error whose path mentions `alias`."""
    for error in errors:
        path = error.get("path") or []
        if alias in path:
            return error
    return None


def _join(fields: List[str]) -> str:
    return "\n    ".join(fields)
