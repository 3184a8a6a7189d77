"""Template solutions for large payload issues."""

from typing import Dict, List

from ..models import Issue, RiskLevel
from .base import SolutionGenerator, SolutionTemplate


LIMIT_OFFSET_PAGINATION = SolutionTemplate(
    type="limit_offset_pagination",
    code="""// Before: res.json(await User.findAll());

// After: page through the table
async function listUsers(req, res) {
  const page = Math.max(1, parseInt(req.query.page, 10) || 1);
  const pageSize = Math.min(100, parseInt(req.query.pageSize, 10) || 20);

  const { rows, count } = await User.findAndCountAll({
    limit: pageSize,
    offset: (page - 1) * pageSize,
    order: [['id', 'ASC']],
  });

  res.json({ data: rows, page, pageSize, total: count });
}
""",
    reasoning="Return one page at a time with limit/offset and report the total count.",
    estimated_minutes=15,
)

CURSOR_PAGINATION = SolutionTemplate(
    type="cursor_pagination",
    code="""// After: stable cursor pagination for large or fast-changing tables
async function listEvents(req, res) {
  const pageSize = Math.min(100, parseInt(req.query.limit, 10) || 50);
  const cursor = req.query.cursor ? Number(req.query.cursor) : 0;

  const rows = await Event.findAll({
    where: { id: { [Op.gt]: cursor } },
    limit: pageSize + 1,
    order: [['id', 'ASC']],
  });

  const hasMore = rows.length > pageSize;
  const data = hasMore ? rows.slice(0, pageSize) : rows;
  const nextCursor = hasMore ? data[data.length - 1].id : null;

  res.json({ data, nextCursor });
}
""",
    reasoning=(
        "Use a cursor on an indexed column; pages stay fast and consistent no matter "
        "how deep the client scrolls."
    ),
    estimated_minutes=25,
)

FIELD_SELECTION = SolutionTemplate(
    type="field_selection",
    code="""// After: only the columns the client renders
async function listUsers(req, res) {
  const users = await User.findAll({
    attributes: ['id', 'name', 'email'],
    limit: 100,
  });
  res.json(users);
}
""",
    reasoning="Select only the fields the response needs instead of whole rows.",
    estimated_minutes=15,
)

PAGINATION_WITH_FIELDS = SolutionTemplate(
    type="pagination_with_fields",
    code="""// After: paginated and trimmed to the needed fields
async function listProducts(req, res) {
  const page = Math.max(1, parseInt(req.query.page, 10) || 1);
  const pageSize = 20;

  const products = await Product.findAll({
    attributes: ['id', 'title', 'price'],
    limit: pageSize,
    offset: (page - 1) * pageSize,
  });

  res.json({ data: products, page });
}
""",
    reasoning="Combine pagination with field selection for the smallest possible response.",
    estimated_minutes=30,
)

STREAMING_RESPONSE = SolutionTemplate(
    type="streaming_response",
    code="""// After: stream rows to the client as they are read
async function exportUsers(req, res) {
  res.setHeader('Content-Type', 'application/x-ndjson');
  const pageSize = 500;
  let offset = 0;

  while (true) {
    const batch = await User.findAll({ limit: pageSize, offset, raw: true });
    if (batch.length === 0) {
      break;
    }
    for (const row of batch) {
      res.write(`${JSON.stringify(row)}\\n`);
    }
    offset += pageSize;
  }

  res.end();
}
""",
    reasoning="Stream newline-delimited JSON in batches so memory stays bounded for exports.",
    estimated_minutes=45,
    risk_level=RiskLevel.MEDIUM,
)

SPECIFY_FIELDS = SolutionTemplate(
    type="specify_fields",
    code="""// Before: await User.findAll();

// After: name the columns
async function loadUserSummaries() {
  return User.findAll({ attributes: ['id', 'name'] });
}
""",
    reasoning="List the columns explicitly so new or large columns are never fetched by accident.",
    estimated_minutes=5,
)

ADD_PAGINATION = SolutionTemplate(
    type="add_pagination",
    code="""// After: bounded query
async function loadRecentOrders(page) {
  const pageSize = 50;
  return Order.findAll({
    limit: pageSize,
    offset: (page - 1) * pageSize,
    order: [['createdAt', 'DESC']],
  });
}
""",
    reasoning="Bound the query with limit/offset so result size does not grow with the table.",
    estimated_minutes=10,
)

ADD_FILTERING = SolutionTemplate(
    type="add_filtering",
    code="""// After: filter in the database instead of in memory
async function loadActiveUsers() {
  return User.findAll({
    where: { status: 'active' },
    attributes: ['id', 'name'],
    limit: 100,
  });
}
""",
    reasoning="Add a where clause so only relevant rows leave the database.",
    estimated_minutes=10,
)

LEAN_QUERIES = SolutionTemplate(
    type="lean_queries",
    code="""// After: plain objects instead of full documents
async function loadUserNames() {
  return UserModel.find({}).select('name email').limit(100).lean();
}
""",
    reasoning="Use lean() and select() with Mongoose to skip document hydration and unused fields.",
    estimated_minutes=5,
)

PAGINATION_WRAPPER = SolutionTemplate(
    type="pagination_wrapper",
    code="""// After: every list query goes through one bounded helper
async function paginate(model, options, page, pageSize) {
  const size = Math.min(pageSize || 20, 100);
  const current = Math.max(page || 1, 1);
  const { rows, count } = await model.findAndCountAll({
    ...options,
    limit: size,
    offset: (current - 1) * size,
  });
  return { data: rows, page: current, pageSize: size, total: count };
}
""",
    reasoning="Centralize pagination in one helper so callers cannot forget the limit.",
    estimated_minutes=20,
)

DTO_SERIALIZER = SolutionTemplate(
    type="dto_serializer",
    code="""// After: map entities to response objects explicitly
function toUserDto(user) {
  return {
    id: user.id,
    name: user.name,
    avatarUrl: user.avatarUrl,
  };
}

async function listUsers(req, res) {
  const users = await User.findAll({ limit: 100 });
  res.json(users.map(toUserDto));
}
""",
    reasoning="Serialize through a DTO so internal and heavy fields never reach the client.",
    estimated_minutes=30,
)

GRAPHQL_FIELDS = SolutionTemplate(
    type="graphql_fields",
    code="""// After: resolve only the fields the query asked for
async function usersResolver(parent, args, context, info) {
  const requested = info.fieldNodes[0].selectionSet.selections.map((field) => field.name.value);
  return User.findAll({
    attributes: requested,
    limit: args.first || 20,
  });
}
""",
    reasoning="Let the client choose fields and fetch only those columns in the resolver.",
    estimated_minutes=25,
)

RESPONSE_COMPRESSION = SolutionTemplate(
    type="response_compression",
    code="""import compression from 'compression';

// After: compress responses above 1 KB
function enableCompression(app) {
  app.use(compression({ threshold: 1024 }));
}
""",
    reasoning="Enable gzip/brotli compression to shrink large JSON responses on the wire.",
    estimated_minutes=10,
)

GENERIC_PAGINATION = SolutionTemplate(
    type="generic_pagination",
    code="""// After: slice large collections before returning them
function paginateArray(items, page, pageSize) {
  const size = pageSize || 20;
  const start = (Math.max(page || 1, 1) - 1) * size;
  return {
    data: items.slice(start, start + size),
    total: items.length,
  };
}
""",
    reasoning="Return large collections in pages instead of all at once.",
    estimated_minutes=15,
)

CATALOG: Dict[str, List[SolutionTemplate]] = {
    "large_api_payload": [
        LIMIT_OFFSET_PAGINATION,
        CURSOR_PAGINATION,
        FIELD_SELECTION,
        PAGINATION_WITH_FIELDS,
        STREAMING_RESPONSE,
    ],
    "select_all_query": [SPECIFY_FIELDS, ADD_PAGINATION, ADD_FILTERING, LEAN_QUERIES],
    "large_return_payload": [PAGINATION_WRAPPER, DTO_SERIALIZER, GRAPHQL_FIELDS, RESPONSE_COMPRESSION],
}


class LargePayloadSolutionGenerator(SolutionGenerator):
    """Pagination, projection and serialization templates."""

    name = "Large Payload Solution Generator"
    issue_types = frozenset(CATALOG)

    def templates_for(self, issue: Issue) -> List[SolutionTemplate]:
        return list(CATALOG.get(issue.type, [GENERIC_PAGINATION]))
