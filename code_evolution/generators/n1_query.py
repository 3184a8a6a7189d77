"""Template solutions for N+1 query issues."""

from typing import List, Optional, Set

from ..models import Issue, RiskLevel
from .base import SolutionGenerator, SolutionTemplate


EAGER_LOADING = SolutionTemplate(
    type="eager_loading",
    code="""// Before: one Order query per user
// for (const user of users) {
//   user.orders = await Order.findAll({ where: { userId: user.id } });
// }

// After: users and their orders in a single query
async function loadUsersWithOrders() {
  const users = await User.findAll({
    include: [{ model: Order, as: 'orders' }],
  });
  return users;
}
""",
    reasoning=(
        "Use Sequelize eager loading (include) to fetch the parent rows and their "
        "associations in one query instead of one query per row."
    ),
    estimated_minutes=15,
)

BATCH_QUERY = SolutionTemplate(
    type="batch_query",
    code="""// Before: one Order query per user
// for (const user of users) {
//   user.orders = await Order.findAll({ where: { userId: user.id } });
// }

// After: one IN query, grouped in memory
async function loadOrdersForUsers(users) {
  const userIds = users.map((user) => user.id);
  const orders = await Order.findAll({
    where: { userId: userIds },
  });

  const ordersByUser = new Map();
  for (const order of orders) {
    const list = ordersByUser.get(order.userId) || [];
    list.push(order);
    ordersByUser.set(order.userId, list);
  }

  return users.map((user) => ({ ...user, orders: ordersByUser.get(user.id) || [] }));
}
""",
    reasoning=(
        "Collect the ids first, fetch all related rows with a single IN query and "
        "group them in memory. Works when no association is defined."
    ),
    estimated_minutes=30,
)

PRISMA_INCLUDE = SolutionTemplate(
    type="prisma_include",
    code="""// Before: one posts query per user
// for (const user of users) {
//   user.posts = await prisma.post.findMany({ where: { authorId: user.id } });
// }

// After: relation loaded by Prisma in the same request
async function loadUsersWithPosts() {
  const users = await prisma.user.findMany({
    include: { posts: true, profile: true },
  });
  return users;
}
""",
    reasoning="Use Prisma include to load relations together with the parent records.",
    estimated_minutes=10,
)

PRISMA_SELECT = SolutionTemplate(
    type="prisma_select",
    code="""// Before: full records plus one relation query per row

// After: nested select returns only the needed columns
async function loadUserSummaries() {
  const users = await prisma.user.findMany({
    select: {
      id: true,
      name: true,
      posts: { select: { id: true, title: true } },
    },
  });
  return users;
}
""",
    reasoning=(
        "Use a nested Prisma select to fetch the relation and only the fields the "
        "caller needs, reducing both query count and payload size."
    ),
    estimated_minutes=20,
)

MONGOOSE_POPULATE = SolutionTemplate(
    type="mongoose_populate",
    code="""// Before: one author lookup per post
// for (const post of posts) {
//   post.author = await User.findById(post.authorId);
// }

// After: populate resolves all references in one extra query
async function loadPostsWithAuthors() {
  const posts = await Post.find({ published: true })
    .populate('author', 'name email')
    .lean();
  return posts;
}
""",
    reasoning="Use Mongoose populate so references are resolved with a single $in query.",
    estimated_minutes=15,
)

RAW_JOIN = SolutionTemplate(
    type="raw_join",
    code="""// Before: aggregate computed with one query per user

// After: a single JOIN does the work in the database
async function loadUsersWithOrderCounts(sequelize) {
  const [rows] = await sequelize.query(`
    SELECT u.id, u.name, COUNT(o.id) AS order_count
    FROM users u
    LEFT JOIN orders o ON o.user_id = u.id
    GROUP BY u.id, u.name
  `);
  return rows;
}
""",
    reasoning=(
        "Write the JOIN by hand. Fastest option, but bypasses the ORM's model "
        "layer and must be kept in sync with the schema."
    ),
    estimated_minutes=120,
    risk_level=RiskLevel.MEDIUM,
)

DATALOADER = SolutionTemplate(
    type="dataloader",
    code="""import DataLoader from 'dataloader';

// Before: every resolver call issues its own query

// After: calls made in the same tick are batched into one query
const orderLoader = new DataLoader(async (userIds) => {
  const orders = await Order.findAll({ where: { userId: userIds } });
  return userIds.map((id) => orders.filter((order) => order.userId === id));
});

async function loadOrders(user) {
  return orderLoader.load(user.id);
}
""",
    reasoning=(
        "Introduce DataLoader to batch and cache per-request lookups. Suited to "
        "GraphQL resolvers where the loop is not under your control."
    ),
    estimated_minutes=180,
    risk_level=RiskLevel.HIGH,
)

FAMILY_TEMPLATES = {
    "sequelize": [EAGER_LOADING, BATCH_QUERY],
    "prisma": [PRISMA_INCLUDE, PRISMA_SELECT],
    "mongoose": [MONGOOSE_POPULATE],
}


def detect_access_family(issue: Issue) -> Optional[str]:
    """Library family the issue's code uses: detector metrics first, then the snippet."""
    families = [f.lower() for f in issue.metric("accessFamilies", []) or []]
    known = [f for f in families if f in FAMILY_TEMPLATES]
    if len(known) == 1:
        return known[0]

    code = issue.before_snippet
    if "findAll" in code or "findByPk" in code:
        return "sequelize"
    if "prisma." in code:
        return "prisma"
    if ".find(" in code or ".findOne(" in code:
        return "mongoose"
    return None


class N1QuerySolutionGenerator(SolutionGenerator):
    """Eager-loading, batching and join templates for N+1 queries."""

    name = "N+1 Query Solution Generator"
    issue_types = frozenset({"n_plus_1_query"})

    def templates_for(self, issue: Issue) -> List[SolutionTemplate]:
        family = detect_access_family(issue)
        templates = list(FAMILY_TEMPLATES.get(family, []))
        templates.extend([RAW_JOIN, DATALOADER])
        return templates

    def existing_patterns(self, issue: Issue) -> Set[str]:
        family = detect_access_family(issue)
        return {t.type for t in FAMILY_TEMPLATES.get(family, [])}
