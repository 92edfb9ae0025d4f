from typing import List

from ..state import QueryState


class PipelineHandlerBase:
    """ An implementation of a handler for QueryBuilder

        Every subclass handles a single section of the QueryState,
        and compiles it into pipeline stages.

        Handlers are cheap: QueryBuilder creates new ones every time it compiles a pipeline.
    """

    #: Name of the QueryState section that this object is capable of handling
    query_state_section_name = None

    def __init__(self, state: QueryState):
        """ Initialize the handler with a query state.

        :param state: The state to compile.
            Handlers never modify it: they only read.
        """
        #: The state to handle
        self.state = state

    def is_input_empty(self) -> bool:
        """ Test whether the state has nothing for this handler

        When the input is empty, compile_stages() gives an empty list.
        """
        return not getattr(self.state, self.query_state_section_name)

    def compile_stages(self) -> List[dict]:
        """ Compile the state into a list of pipeline stages

        :rtype: list[dict]
        """
        raise NotImplementedError()

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__,
                                 getattr(self.state, self.query_state_section_name, None))
