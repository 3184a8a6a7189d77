"""Template solutions for memory leak issues."""

from typing import Dict, List, Set

from ..models import Issue, RiskLevel
from .base import SolutionGenerator, SolutionTemplate


REACT_USEEFFECT_CLEANUP = SolutionTemplate(
    type="react_useeffect_cleanup",
    code="""// Before: the listener outlives the component
// useEffect(() => {
//   window.addEventListener('resize', handleResize);
// }, []);

// After: the effect returns its own teardown
function useWindowSize(onResize) {
  React.useEffect(() => {
    const handleResize = () => onResize(window.innerWidth);
    window.addEventListener('resize', handleResize);
    return () => {
      window.removeEventListener('resize', handleResize);
    };
  }, [onResize]);
}
""",
    reasoning=(
        "Return a cleanup function from useEffect that removes the listener. React "
        "runs it on unmount and before the effect re-runs."
    ),
    estimated_minutes=10,
)

REACT_CLASS_CLEANUP = SolutionTemplate(
    type="react_class_cleanup",
    code="""// After: pair addEventListener with removeEventListener
class ResizeAware extends React.Component {
  handleResize = () => {
    this.setState({ width: window.innerWidth });
  };

  componentDidMount() {
    window.addEventListener('resize', this.handleResize);
  }

  componentWillUnmount() {
    window.removeEventListener('resize', this.handleResize);
  }
}
""",
    reasoning=(
        "Keep the handler as a stable class field and remove it in componentWillUnmount."
    ),
    estimated_minutes=15,
)

VUE_CLEANUP = SolutionTemplate(
    type="vue_cleanup",
    code="""// After: register in onMounted, remove in onUnmounted
function useResize(onResize) {
  const handleResize = () => onResize(window.innerWidth);

  onMounted(() => {
    window.addEventListener('resize', handleResize);
  });

  onUnmounted(() => {
    window.removeEventListener('resize', handleResize);
  });
}
""",
    reasoning="Remove the listener in the onUnmounted hook of the same composable.",
    estimated_minutes=15,
)

ANGULAR_CLEANUP = SolutionTemplate(
    type="angular_cleanup",
    code="""// After: keep the handler reference and release it in ngOnDestroy
class ResizeComponent {
  handleResize = () => {
    this.width = window.innerWidth;
  };

  ngOnInit() {
    window.addEventListener('resize', this.handleResize);
  }

  ngOnDestroy() {
    window.removeEventListener('resize', this.handleResize);
  }
}
""",
    reasoning="Implement OnDestroy and remove the listener in ngOnDestroy.",
    estimated_minutes=15,
)

ABORT_CONTROLLER = SolutionTemplate(
    type="abort_controller",
    code="""// After: one abort() call removes every listener bound to the signal
function bindListeners(target, handlers) {
  const controller = new AbortController();
  const { signal } = controller;

  target.addEventListener('click', handlers.onClick, { signal });
  target.addEventListener('keydown', handlers.onKeyDown, { signal });

  return () => controller.abort();
}
""",
    reasoning=(
        "Pass an AbortSignal when registering listeners and abort it on teardown. "
        "Works in any framework and for any number of listeners."
    ),
    estimated_minutes=20,
)

REACT_TIMER_CLEANUP = SolutionTemplate(
    type="react_timer_cleanup",
    code="""// Before: setInterval(poll, 1000) is never cleared

// After: the effect clears its own interval
function usePolling(poll, delay) {
  React.useEffect(() => {
    const intervalId = setInterval(poll, delay);
    return () => clearInterval(intervalId);
  }, [poll, delay]);
}
""",
    reasoning="Store the interval id inside the effect and clear it in the cleanup function.",
    estimated_minutes=10,
)

CLASS_TIMER_CLEANUP = SolutionTemplate(
    type="class_timer_cleanup",
    code="""// After: the owner keeps the id and clears it when disposed
class Poller {
  constructor(poll, delay) {
    this.poll = poll;
    this.delay = delay;
    this.intervalId = null;
  }

  start() {
    this.stop();
    this.intervalId = setInterval(this.poll, this.delay);
  }

  stop() {
    if (this.intervalId !== null) {
      clearInterval(this.intervalId);
      this.intervalId = null;
    }
  }
}
""",
    reasoning="Keep the interval id on the owning object and clear it in a stop/dispose method.",
    estimated_minutes=15,
)

TIMEOUT_CANCELLATION = SolutionTemplate(
    type="timeout_cancellation",
    code="""// After: recursive timeout that can be cancelled
function schedule(task, delay) {
  let timeoutId = null;
  let cancelled = false;

  const run = async () => {
    await task();
    if (!cancelled) {
      timeoutId = setTimeout(run, delay);
    }
  };

  timeoutId = setTimeout(run, delay);

  return () => {
    cancelled = true;
    clearTimeout(timeoutId);
  };
}
""",
    reasoning=(
        "Replace setInterval with a cancellable setTimeout chain so slow tasks never "
        "overlap and teardown is explicit."
    ),
    estimated_minutes=15,
)

TIMER_MANAGER = SolutionTemplate(
    type="timer_manager",
    code="""// After: one place that owns every timer
class TimerManager {
  constructor() {
    this.timers = new Set();
  }

  setInterval(callback, delay) {
    const id = setInterval(callback, delay);
    this.timers.add(id);
    return id;
  }

  clear(id) {
    clearInterval(id);
    this.timers.delete(id);
  }

  clearAll() {
    for (const id of this.timers) {
      clearInterval(id);
    }
    this.timers.clear();
  }
}
""",
    reasoning="Track timers centrally so a single clearAll() releases everything on teardown.",
    estimated_minutes=30,
    risk_level=RiskLevel.MEDIUM,
)

MODULE_SCOPE = SolutionTemplate(
    type="module_scope",
    code="""// Before: window.appCache = {};

// After: module-private state with an explicit reset
const appCache = new Map();

export function getCached(key) {
  return appCache.get(key);
}

export function resetCache() {
  appCache.clear();
}
""",
    reasoning="Keep state in module scope instead of on the global object and expose a reset.",
    estimated_minutes=10,
)

SINGLETON_CLEANUP = SolutionTemplate(
    type="singleton_cleanup",
    code="""// After: a singleton that can be torn down
class Store {
  static instance = null;

  static getInstance() {
    if (!Store.instance) {
      Store.instance = new Store();
    }
    return Store.instance;
  }

  static destroy() {
    if (Store.instance) {
      Store.instance.entries.clear();
      Store.instance = null;
    }
  }

  constructor() {
    this.entries = new Map();
  }
}
""",
    reasoning="Wrap the global in a singleton with a destroy() method so it can be released.",
    estimated_minutes=25,
)

CONTEXT_PROVIDER = SolutionTemplate(
    type="context_provider",
    code="""// After: shared state passed explicitly and scoped to its owner
function createAppContext() {
  const state = new Map();
  return {
    get: (key) => state.get(key),
    set: (key, value) => state.set(key, value),
    dispose: () => state.clear(),
  };
}
""",
    reasoning="Pass shared state through an explicit context object with a dispose method.",
    estimated_minutes=20,
)

WEAK_MAP = SolutionTemplate(
    type="weak_map",
    code="""// After: metadata keyed weakly by its owner
const metadata = new WeakMap();

function attachMetadata(owner, data) {
  metadata.set(owner, data);
}

function readMetadata(owner) {
  return metadata.get(owner);
}
""",
    reasoning="Hold per-object data in a WeakMap so it is collected together with the object.",
    estimated_minutes=30,
    risk_level=RiskLevel.MEDIUM,
)

LIMIT_SCOPE = SolutionTemplate(
    type="limit_scope",
    code="""// Before: the handler closes over the whole dataset

// After: capture only what the handler needs
function createHandler(records) {
  const total = records.length;
  return function handle() {
    return total;
  };
}
""",
    reasoning="Derive the small value the closure needs and capture that instead of the array.",
    estimated_minutes=10,
)

EXPLICIT_CLEANUP = SolutionTemplate(
    type="explicit_cleanup",
    code="""// After: the closure exposes a release method
function createProcessor(records) {
  let data = records;
  return {
    process() {
      return data ? data.length : 0;
    },
    release() {
      data = null;
    },
  };
}
""",
    reasoning="Give the owner a release() method that drops the captured reference.",
    estimated_minutes=15,
)

GENERIC_CLEANUP = SolutionTemplate(
    type="generic_cleanup",
    code="""// After: collect teardown callbacks and run them together
function createDisposer() {
  const callbacks = [];
  return {
    add(callback) {
      callbacks.push(callback);
    },
    dispose() {
      while (callbacks.length > 0) {
        const callback = callbacks.pop();
        callback();
      }
    },
  };
}
""",
    reasoning="Register every teardown step with a disposer and call dispose() when done.",
    estimated_minutes=25,
    risk_level=RiskLevel.MEDIUM,
)

# Templates whose code only fits one framework
FRAMEWORK_TEMPLATES: Dict[str, List[SolutionTemplate]] = {
    "react": [REACT_USEEFFECT_CLEANUP, REACT_CLASS_CLEANUP, REACT_TIMER_CLEANUP],
    "vue": [VUE_CLEANUP],
    "angular": [ANGULAR_CLEANUP],
}


def _framework(issue: Issue) -> str:
    return str(issue.metric("framework", "none") or "none")


def _allows(framework: str, wanted: str) -> bool:
    return framework in (wanted, "none")


class MemoryLeakSolutionGenerator(SolutionGenerator):
    """Teardown templates, filtered by the framework the file uses."""

    name = "Memory Leak Solution Generator"
    issue_types = frozenset({
        "event_listener_leak",
        "timer_leak",
        "global_variable_leak",
        "closure_memory_leak",
    })

    def templates_for(self, issue: Issue) -> List[SolutionTemplate]:
        framework = _framework(issue)

        if issue.type == "event_listener_leak":
            templates = []
            if _allows(framework, "react"):
                templates += [REACT_USEEFFECT_CLEANUP, REACT_CLASS_CLEANUP]
            if _allows(framework, "vue"):
                templates.append(VUE_CLEANUP)
            if _allows(framework, "angular"):
                templates.append(ANGULAR_CLEANUP)
            templates.append(ABORT_CONTROLLER)
            return templates

        if issue.type == "timer_leak":
            templates = [REACT_TIMER_CLEANUP] if _allows(framework, "react") else []
            return templates + [CLASS_TIMER_CLEANUP, TIMEOUT_CANCELLATION, TIMER_MANAGER]

        if issue.type == "global_variable_leak":
            return [MODULE_SCOPE, SINGLETON_CLEANUP, CONTEXT_PROVIDER]

        if issue.type == "closure_memory_leak":
            return [WEAK_MAP, LIMIT_SCOPE, EXPLICIT_CLEANUP]

        return [GENERIC_CLEANUP]

    def existing_patterns(self, issue: Issue) -> Set[str]:
        return {template.type for template in FRAMEWORK_TEMPLATES.get(_framework(issue), [])}
