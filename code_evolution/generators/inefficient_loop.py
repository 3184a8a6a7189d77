"""Template solutions for inefficient loop issues."""

from typing import Dict, List

from ..models import Issue, RiskLevel
from .base import SolutionGenerator, SolutionTemplate


PROMISE_ALL_MAP = SolutionTemplate(
    type="promise_all_map",
    code="""// Before: each item waits for the previous one
// for (const item of items) {
//   results.push(await processItem(item));
// }

// After: all items processed concurrently
async function processAll(items) {
  const results = await Promise.all(items.map((item) => processItem(item)));
  return results;
}
""",
    reasoning=(
        "Use Promise.all with map to run independent async operations concurrently. "
        "The simplest and most effective fix when iterations do not depend on each other."
    ),
    estimated_minutes=10,
)

PROMISE_ALL_SETTLED = SolutionTemplate(
    type="promise_all_settled",
    code="""// After: concurrent execution that tolerates individual failures
async function processAllSettled(items) {
  const settled = await Promise.allSettled(items.map((item) => processItem(item)));

  const results = settled
    .filter((outcome) => outcome.status === 'fulfilled')
    .map((outcome) => outcome.value);
  const errors = settled
    .filter((outcome) => outcome.status === 'rejected')
    .map((outcome) => outcome.reason);

  return { results, errors };
}
""",
    reasoning=(
        "Use Promise.allSettled when one failure must not abort the batch. Every "
        "operation runs and successes and failures are reported separately."
    ),
    estimated_minutes=15,
)

BATCHED_CONCURRENCY = SolutionTemplate(
    type="batched_concurrency",
    code="""import pLimit from 'p-limit';

// After: concurrent, but never more than 5 operations in flight
const limit = pLimit(5);

async function processWithLimit(items) {
  const results = await Promise.all(items.map((item) => limit(() => processItem(item))));
  return results;
}
""",
    reasoning=(
        "Cap concurrency with p-limit when unbounded parallelism would overload a "
        "database or a rate-limited API."
    ),
    estimated_minutes=30,
)

ARRAY_TO_SET = SolutionTemplate(
    type="array_to_set",
    code="""// Before: O(n) scan of allowedIds for every item
// for (const item of items) {
//   if (allowedIds.includes(item.id)) matches.push(item);
// }

// After: O(1) membership checks
function filterAllowed(items, allowedIds) {
  const allowed = new Set(allowedIds);
  return items.filter((item) => allowed.has(item.id));
}
""",
    reasoning="Build a Set once and use has() for constant-time membership checks.",
    estimated_minutes=5,
)

ARRAY_TO_MAP = SolutionTemplate(
    type="array_to_map",
    code="""// Before: users.find(...) inside the loop
// for (const order of orders) {
//   order.user = users.find((user) => user.id === order.userId);
// }

// After: index users by id once
function attachUsers(orders, users) {
  const usersById = new Map(users.map((user) => [user.id, user]));
  return orders.map((order) => ({ ...order, user: usersById.get(order.userId) }));
}
""",
    reasoning="Index the searched array in a Map keyed by the lookup field, then read it in O(1).",
    estimated_minutes=10,
)

INDEX_OBJECT = SolutionTemplate(
    type="index_object",
    code="""// After: plain object index for string keys
function indexBy(records, key) {
  const index = {};
  for (const record of records) {
    index[record[key]] = record;
  }
  return index;
}
""",
    reasoning="Build a keyed object once when keys are strings and a Map is not needed.",
    estimated_minutes=10,
)

HASH_MAP_JOIN = SolutionTemplate(
    type="hash_map_join",
    code="""// Before: nested loops compare every pair, O(n * m)
// for (const user of users) {
//   for (const order of orders) {
//     if (order.userId === user.id) user.orders.push(order);
//   }
// }

// After: hash join, O(n + m)
function joinOrders(users, orders) {
  const ordersByUser = new Map();
  for (const order of orders) {
    const list = ordersByUser.get(order.userId) || [];
    list.push(order);
    ordersByUser.set(order.userId, list);
  }
  return users.map((user) => ({ ...user, orders: ordersByUser.get(user.id) || [] }));
}
""",
    reasoning="Replace the inner loop with a hash map built in one pass over the inner collection.",
    estimated_minutes=20,
)

SORT_AND_MERGE = SolutionTemplate(
    type="sort_and_merge",
    code="""// After: sort both sides, then walk them together, O(n log n)
function mergeJoin(left, right, key) {
  const a = [...left].sort((x, y) => x[key] - y[key]);
  const b = [...right].sort((x, y) => x[key] - y[key]);
  const pairs = [];
  let i = 0;
  let j = 0;
  while (i < a.length && j < b.length) {
    if (a[i][key] === b[j][key]) {
      pairs.push([a[i], b[j]]);
      j += 1;
    } else if (a[i][key] < b[j][key]) {
      i += 1;
    } else {
      j += 1;
    }
  }
  return pairs;
}
""",
    reasoning=(
        "Sort both collections and merge them with two cursors when memory for a "
        "hash map is a concern."
    ),
    estimated_minutes=45,
    risk_level=RiskLevel.MEDIUM,
)

DATABASE_JOIN = SolutionTemplate(
    type="database_join",
    code="""// After: let the database match the rows
async function loadUsersWithOrders() {
  const users = await User.findAll({
    include: [{ model: Order, required: false }],
  });
  return users;
}
""",
    reasoning="Push the matching into the database with a JOIN when both sides come from tables.",
    estimated_minutes=15,
)

ARRAY_JOIN = SolutionTemplate(
    type="array_join",
    code="""// Before: html += '<li>' + item.name + '</li>';

// After: collect the parts and join once
function renderList(items) {
  const parts = [];
  for (const item of items) {
    parts.push(`<li>${item.name}</li>`);
  }
  return parts.join('');
}
""",
    reasoning="Collect fragments in an array and join them once instead of growing a string.",
    estimated_minutes=5,
)

TEMPLATE_MAP = SolutionTemplate(
    type="template_map",
    code="""// After: map to template literals and join
function renderRows(rows) {
  return rows.map((row) => `<tr><td>${row.id}</td><td>${row.name}</td></tr>`).join('');
}
""",
    reasoning="Build the whole string with map and template literals in one expression.",
    estimated_minutes=5,
)

HOIST_REGEX = SolutionTemplate(
    type="hoist_regex",
    code="""// Before: the pattern is rebuilt on every iteration
// for (const line of lines) {
//   if (new RegExp('^ERROR').test(line)) errors.push(line);
// }

// After: compile once, reuse
const ERROR_PATTERN = /^ERROR/;

function findErrors(lines) {
  return lines.filter((line) => ERROR_PATTERN.test(line));
}
""",
    reasoning="Compile the regular expression once outside the loop and reuse it.",
    estimated_minutes=2,
)

BATCH_JSON_OPERATIONS = SolutionTemplate(
    type="batch_json_operations",
    code="""// Before: JSON.parse called once per record
// for (const raw of rawRecords) {
//   records.push(JSON.parse(raw));
// }

// After: parse one JSON array
function parseRecords(rawRecords) {
  return JSON.parse(`[${rawRecords.join(',')}]`);
}
""",
    reasoning="Serialize or parse the whole batch with a single JSON call.",
    estimated_minutes=15,
)

STRUCTURED_CLONE = SolutionTemplate(
    type="structured_clone",
    code="""// Before: JSON.parse(JSON.stringify(item)) to deep-copy each item

// After: native deep copy
function cloneAll(items) {
  return items.map((item) => structuredClone(item));
}
""",
    reasoning="Use structuredClone for deep copies instead of a JSON round trip.",
    estimated_minutes=5,
)

ASYNC_PROMISE_ALL = SolutionTemplate(
    type="async_promise_all",
    code="""import { readFile } from 'fs/promises';

// Before: readFileSync blocks the event loop for every file

// After: non-blocking reads performed concurrently
async function readAll(paths) {
  const contents = await Promise.all(paths.map((path) => readFile(path, 'utf8')));
  return contents;
}
""",
    reasoning="Switch to fs/promises and read the files concurrently with Promise.all.",
    estimated_minutes=15,
)

STREAMING = SolutionTemplate(
    type="streaming",
    code="""import { createReadStream, createWriteStream } from 'fs';
import { pipeline } from 'stream/promises';

// After: stream data instead of loading whole files
async function concatenate(paths, target) {
  const output = createWriteStream(target);
  for (const path of paths) {
    await pipeline(createReadStream(path), output, { end: false });
  }
  output.end();
}
""",
    reasoning="Stream large files so memory stays flat and the event loop stays free.",
    estimated_minutes=45,
    risk_level=RiskLevel.MEDIUM,
)

SINGLE_REDUCE = SolutionTemplate(
    type="single_reduce",
    code="""// Before: items.filter((item) => item.active).map((item) => item.name)

// After: one pass
function activeNames(items) {
  return items.reduce((names, item) => {
    if (item.active) {
      names.push(item.name);
    }
    return names;
  }, []);
}
""",
    reasoning="Fold the filter and the map into one reduce so the array is walked once.",
    estimated_minutes=10,
)

FLATTEN_WITH_MAP = SolutionTemplate(
    type="flatten_with_map",
    code="""// Before: users.map((user) => orders.filter((order) => order.userId === user.id))

// After: group once, then look up
function ordersPerUser(users, orders) {
  const grouped = new Map();
  for (const order of orders) {
    const list = grouped.get(order.userId) || [];
    list.push(order);
    grouped.set(order.userId, list);
  }
  return users.map((user) => grouped.get(user.id) || []);
}
""",
    reasoning="Group the inner array by key once so the outer method does O(1) lookups.",
    estimated_minutes=20,
)

DOCUMENT_FRAGMENT = SolutionTemplate(
    type="document_fragment",
    code="""// Before: container.appendChild(node) for every item

// After: build off-document, attach once
function renderItems(container, items) {
  const fragment = document.createDocumentFragment();
  for (const item of items) {
    const element = document.createElement('li');
    element.textContent = item.name;
    fragment.appendChild(element);
  }
  container.appendChild(fragment);
}
""",
    reasoning="Assemble nodes in a DocumentFragment and insert it with a single reflow.",
    estimated_minutes=10,
)

INNER_HTML_BATCH = SolutionTemplate(
    type="inner_html_batch",
    code="""// After: one innerHTML write for the whole list
function renderItemsHtml(container, items) {
  container.innerHTML = items.map((item) => `<li>${escapeHtml(item.name)}</li>`).join('');
}
""",
    reasoning="Build the markup as one string and assign innerHTML once. Escape user data.",
    estimated_minutes=5,
)

OWN_PROPERTY_CHECK = SolutionTemplate(
    type="own_property_check",
    code="""// Before: Object.keys(config).includes(key) inside the loop

// After: direct property check
function knownKeys(config, keys) {
  return keys.filter((key) => Object.hasOwn(config, key));
}
""",
    reasoning="Check keys with Object.hasOwn instead of rebuilding and scanning the key array.",
    estimated_minutes=5,
)

FUNCTIONAL_APPROACH = SolutionTemplate(
    type="functional_approach",
    code="""// After: declarative transformation without manual accumulation
function transform(items) {
  return items.filter((item) => item.enabled).map((item) => ({ id: item.id, label: item.name }));
}
""",
    reasoning="Express the loop as a declarative pipeline; simpler to read and optimize.",
    estimated_minutes=5,
)

CATALOG: Dict[str, List[SolutionTemplate]] = {
    "await_in_loop": [PROMISE_ALL_MAP, PROMISE_ALL_SETTLED, BATCHED_CONCURRENCY],
    "array_lookup_in_loop": [ARRAY_TO_SET, ARRAY_TO_MAP, INDEX_OBJECT],
    "nested_loops": [HASH_MAP_JOIN, SORT_AND_MERGE, DATABASE_JOIN],
    "string_concat_in_loop": [ARRAY_JOIN, TEMPLATE_MAP],
    "regex_compilation_in_loop": [HOIST_REGEX],
    "json_operations_in_loop": [BATCH_JSON_OPERATIONS, STRUCTURED_CLONE],
    "sync_file_io_in_loop": [ASYNC_PROMISE_ALL, STREAMING],
    "inefficient_array_chaining": [SINGLE_REDUCE],
    "nested_array_methods": [FLATTEN_WITH_MAP],
    "dom_manipulation_in_loop": [DOCUMENT_FRAGMENT, INNER_HTML_BATCH],
    "object_keys_with_lookup": [OWN_PROPERTY_CHECK, ARRAY_TO_SET],
}


class InefficientLoopSolutionGenerator(SolutionGenerator):
    """Concurrency, indexing and hoisting templates for loop issues."""

    name = "Inefficient Loop Solution Generator"
    issue_types = frozenset(CATALOG) | {"array_push_in_loop"}

    def templates_for(self, issue: Issue) -> List[SolutionTemplate]:
        return list(CATALOG.get(issue.type, [FUNCTIONAL_APPROACH]))
